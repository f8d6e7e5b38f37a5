#!/usr/bin/env python3
"""
Admin Setup Script for InsureWise Backend

Creates (or promotes) an admin user and gives it a wallet.
The app calls ensure_admin_user() at startup when ADMIN_EMAIL and
ADMIN_PASSWORD are set.

Usage:
    python -m insurewise_backend.setup_admin admin@example.com 'S3cure-password'
"""

from datetime import datetime
import logging
import sys

from bson import ObjectId
from werkzeug.security import generate_password_hash

logger = logging.getLogger(__name__)


def ensure_admin_user(db, email, password, first_name='System', last_name='Administrator',
                      phone_number='+2340000000000'):
    """Create the admin user if missing, or give an existing user the admin role."""
    email = email.lower().strip()
    existing_admin = db.users.find_one({'email': email})
    if existing_admin:
        if existing_admin.get('role') != 'admin':
            db.users.update_one(
                {'_id': existing_admin['_id']},
                {'$set': {'role': 'admin', 'updatedAt': datetime.utcnow()}}
            )
            logger.info("Promoted existing user %s to admin", email)
        return existing_admin['_id']

    now = datetime.utcnow()
    admin_user = {
        '_id': ObjectId(),
        'email': email,
        'password': generate_password_hash(password),
        'firstName': first_name,
        'lastName': last_name,
        'phoneNumber': phone_number,
        'role': 'admin',
        'isActive': True,
        'isEmailVerified': True,
        'isPhoneVerified': False,
        'createdAt': now,
        'updatedAt': now,
    }
    db.users.insert_one(admin_user)

    if not db.wallets.find_one({'userId': admin_user['_id']}):
        from insurewise_backend.services.wallet_ledger import WalletLedger
        WalletLedger(db).create_wallet(admin_user['_id'])

    logger.info("Created admin user %s (ID: %s)", email, admin_user['_id'])
    return admin_user['_id']


def main(argv=None):
    from pymongo import MongoClient

    from insurewise_backend.config.environment import MONGO_URI
    from insurewise_backend.utils.logging_config import setup_logging

    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 2:
        print("Usage: python -m insurewise_backend.setup_admin <email> <password>")
        return 1

    setup_logging(enable_files=False)
    client = MongoClient(MONGO_URI)
    try:
        admin_id = ensure_admin_user(client.get_default_database(default='insurewise'), argv[0], argv[1])
        print(f"✅ Admin user ready: {argv[0]} (ID: {admin_id})")
    finally:
        client.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
