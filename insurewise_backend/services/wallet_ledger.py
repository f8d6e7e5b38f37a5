"""
Wallet Ledger

Every balance change goes through WalletLedger.credit / WalletLedger.debit.
Each call is one conditional update on the wallet document plus one insert
into transactions. The two writes are not wrapped in a multi-document
transaction: a crash between them leaves a balance change without its ledger
entry.
"""

from datetime import datetime
import logging
import random
import string
import time

from bson import ObjectId
from pymongo import ReturnDocument

from insurewise_backend.errors import NotFoundError, ValidationError
from insurewise_backend.models import ModelValidator

logger = logging.getLogger(__name__)


def generate_reference(prefix):
    """Reference like CR_1718000000000_X7K2P9QAB."""
    suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}".upper()


class WalletLedger:
    def __init__(self, db):
        self.db = db

    # ==================== WALLETS ====================

    def create_wallet(self, user_id, initial_balance=0.0, currency='NGN'):
        """Create the user's wallet; an opening balance is booked as a credit."""
        if not ModelValidator.validate_wallet_balance(initial_balance):
            raise ValidationError('Initial wallet balance cannot be negative')

        now = datetime.utcnow()
        wallet = {
            '_id': ObjectId(),
            'userId': ObjectId(user_id),
            'balance': 0.0,
            'currency': currency,
            'transactions': [],
            'isActive': True,
            'createdAt': now,
            'updatedAt': now,
        }
        self.db.wallets.insert_one(wallet)

        if initial_balance > 0:
            self.credit(wallet, initial_balance, 'Opening wallet balance', category='other',
                        metadata={'source': 'signup'})
            wallet = self.db.wallets.find_one({'_id': wallet['_id']})

        return wallet

    def get_wallet(self, user_id):
        wallet = self.db.wallets.find_one({'userId': ObjectId(user_id)})
        if not wallet:
            raise NotFoundError('Wallet not found')
        return wallet

    def can_debit(self, wallet, amount):
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            return False
        return bool(wallet.get('isActive')) and amount > 0 and wallet.get('balance', 0) >= amount

    # ==================== LEDGER OPERATIONS ====================

    def _record(self, wallet, transaction_id, entry_type, amount, description, reference,
                category, balance_after, payment_method=None, metadata=None):
        now = datetime.utcnow()
        transaction = {
            '_id': transaction_id,
            'walletId': wallet['_id'],
            'userId': wallet['userId'],
            'type': entry_type,
            'amount': amount,
            'currency': wallet.get('currency', 'NGN'),
            'description': description,
            'reference': reference,
            'status': 'successful',
            'category': category,
            'paymentMethod': payment_method or 'wallet',
            'metadata': metadata or {},
            'balanceBefore': balance_after - amount if entry_type == 'credit' else balance_after + amount,
            'balanceAfter': balance_after,
            'createdAt': now,
            'updatedAt': now,
        }
        self.db.transactions.insert_one(transaction)
        return transaction

    def credit(self, wallet, amount, description, reference=None, category='other',
               payment_method=None, metadata=None):
        """
        Add `amount` to the wallet and book a successful credit.

        Raises:
            ValidationError: amount is not positive
            NotFoundError: wallet no longer exists
        """
        if not ModelValidator.validate_amount(amount):
            raise ValidationError('Credit amount must be positive')
        amount = float(amount)

        transaction_id = ObjectId()
        updated = self.db.wallets.find_one_and_update(
            {'_id': wallet['_id']},
            {
                '$inc': {'balance': amount},
                '$push': {'transactions': transaction_id},
                '$set': {'updatedAt': datetime.utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise NotFoundError('Wallet not found')

        transaction = self._record(
            updated, transaction_id, 'credit', amount, description,
            reference or generate_reference('CR'), category, updated['balance'],
            payment_method=payment_method, metadata=metadata,
        )
        logger.info("Wallet %s credited %.2f (%s)", wallet['_id'], amount, transaction['reference'])
        return transaction

    def debit(self, wallet, amount, description, reference=None, category='other',
              payment_method=None, metadata=None):
        """
        Take `amount` from the wallet and book a successful debit.

        Returns None, leaving the wallet untouched, when the wallet is inactive
        or the balance is below `amount`.

        Raises:
            ValidationError: amount is not positive
        """
        if not ModelValidator.validate_amount(amount):
            raise ValidationError('Debit amount must be positive')
        amount = float(amount)

        transaction_id = ObjectId()
        # The balance guard lives in the filter so the store refuses an overdraw
        updated = self.db.wallets.find_one_and_update(
            {'_id': wallet['_id'], 'isActive': True, 'balance': {'$gte': amount}},
            {
                '$inc': {'balance': -amount},
                '$push': {'transactions': transaction_id},
                '$set': {'updatedAt': datetime.utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            logger.info("Debit of %.2f refused for wallet %s: insufficient funds or inactive",
                        amount, wallet['_id'])
            return None

        transaction = self._record(
            updated, transaction_id, 'debit', amount, description,
            reference or generate_reference('DR'), category, updated['balance'],
            payment_method=payment_method, metadata=metadata,
        )
        logger.info("Wallet %s debited %.2f (%s)", wallet['_id'], amount, transaction['reference'])
        return transaction

    def transfer(self, sender_wallet, recipient_wallet, amount, description=None):
        """
        Move funds between two wallets.
        Each leg gets its own reference (`<base>_DR` / `<base>_CR`).
        """
        if sender_wallet['_id'] == recipient_wallet['_id']:
            raise ValidationError('Cannot transfer to your own wallet')
        if not self.can_debit(sender_wallet, amount):
            raise ValidationError('Insufficient wallet balance')

        base_reference = generate_reference('TRF')
        description = description or 'Wallet transfer'
        debit_tx = self.debit(
            sender_wallet, amount, description, reference=f"{base_reference}_DR",
            category='wallet_transfer',
            metadata={'recipientUserId': str(recipient_wallet['userId']), 'transferReference': base_reference},
        )
        if debit_tx is None:
            raise ValidationError('Insufficient wallet balance')

        credit_tx = self.credit(
            recipient_wallet, amount, description, reference=f"{base_reference}_CR",
            category='wallet_transfer',
            metadata={'senderUserId': str(sender_wallet['userId']), 'transferReference': base_reference},
        )
        return debit_tx, credit_tx

    # ==================== PENDING (GATEWAY) TRANSACTIONS ====================

    def create_pending_transaction(self, wallet, amount, description, reference, category,
                                   payment_method, metadata=None):
        """Book a pending credit that a payment provider will settle later."""
        if not ModelValidator.validate_amount(amount):
            raise ValidationError('Amount must be positive')
        now = datetime.utcnow()
        transaction = {
            '_id': ObjectId(),
            'walletId': wallet['_id'],
            'userId': wallet['userId'],
            'type': 'credit',
            'amount': float(amount),
            'currency': wallet.get('currency', 'NGN'),
            'description': description,
            'reference': reference,
            'status': 'pending',
            'category': category,
            'paymentMethod': payment_method,
            'metadata': metadata or {},
            'createdAt': now,
            'updatedAt': now,
        }
        self.db.transactions.insert_one(transaction)
        return transaction

    def apply_pending_credit(self, reference, provider_data=None):
        """
        Settle a pending credit: flip it to successful, then credit the wallet.

        Returns the settled transaction, or None when the reference is not
        pending any more. Only the caller that wins the status flip credits
        the wallet, so replays are no-ops.
        """
        update = {'status': 'successful', 'updatedAt': datetime.utcnow()}
        if provider_data:
            update['metadata.provider'] = provider_data
        transaction = self.db.transactions.find_one_and_update(
            {'reference': reference, 'status': 'pending'},
            {'$set': update},
            return_document=ReturnDocument.AFTER,
        )
        if transaction is None:
            return None

        wallet = self.db.wallets.find_one_and_update(
            {'_id': transaction['walletId']},
            {
                '$inc': {'balance': transaction['amount']},
                '$push': {'transactions': transaction['_id']},
                '$set': {'updatedAt': datetime.utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )
        if wallet is None:
            logger.error("Settled transaction %s but wallet %s is missing", reference, transaction['walletId'])
            raise NotFoundError('Wallet not found')

        self.db.transactions.update_one(
            {'_id': transaction['_id']},
            {'$set': {'balanceAfter': wallet['balance'],
                      'balanceBefore': wallet['balance'] - transaction['amount']}}
        )
        logger.info("Settled %s: wallet %s credited %.2f", reference, wallet['_id'], transaction['amount'])
        return transaction

    def mark_transaction(self, reference, status, reason=None, provider_data=None):
        """Move a pending transaction to a terminal status. Returns None if not pending."""
        update = {'status': status, 'updatedAt': datetime.utcnow()}
        if reason:
            update['failureReason'] = reason
        if provider_data:
            update['metadata.provider'] = provider_data
        return self.db.transactions.find_one_and_update(
            {'reference': reference, 'status': 'pending'},
            {'$set': update},
            return_document=ReturnDocument.AFTER,
        )
