"""
Database Initialization Script
==============================

Creates the InsureWise collections and indexes and seeds the default
insurance plans. Safe to run multiple times. The app does the same at
startup; this script is for preparing a database ahead of a deploy.

Usage:
    python -m insurewise_backend.init_database
"""

from datetime import datetime
import sys

from insurewise_backend.models import DatabaseInitializer


def init_database(mongo_db, verbose=True):
    """
    Initialize database collections, indexes and default plans.

    Args:
        mongo_db: PyMongo database instance
        verbose: Print detailed output (default: True)

    Returns:
        dict: Initialization results with created/existing collections,
        seeded plan count and any errors
    """
    if verbose:
        print("\n" + "=" * 60)
        print("InsureWise - Database Initialization")
        print("=" * 60)
        print(f"Timestamp: {datetime.utcnow().isoformat()}Z")
        print(f"Database: {mongo_db.name}")
        print()

    initializer = DatabaseInitializer(mongo_db)
    results = initializer.initialize_collections()
    results['plans_seeded'] = initializer.seed_default_plans()

    if verbose:
        print("=" * 60)
        print("Initialization Summary")
        print("=" * 60)

        if results['created']:
            print(f"\n✅ Collections Created: {len(results['created'])}")
            for col in results['created']:
                print(f"   - {col}")

        if results['existing']:
            print(f"\n✅ Collections Already Existing: {len(results['existing'])}")
            for col in results['existing']:
                print(f"   - {col}")

        if results['indexes_created']:
            print(f"\n✅ Indexes Created: {len(results['indexes_created'])}")

        if results['plans_seeded']:
            print(f"\n✅ Default Insurance Plans Seeded: {results['plans_seeded']}")

        if results['errors']:
            print(f"\n⚠️  Errors Encountered: {len(results['errors'])}")
            for error in results['errors']:
                print(f"   - {error}")
        else:
            print("\n✅ No errors encountered")

        print("\n" + "=" * 60)
        print("Database Statistics")
        print("=" * 60)
        for name in initializer.get_collection_indexes():
            stats = initializer.get_collection_stats(name)
            if 'error' not in stats:
                print(f"   {name:<28} {stats['count']:>8} docs {stats['indexes']:>3} indexes")

    return results


def main():
    from flask import Flask
    from flask_pymongo import PyMongo

    from insurewise_backend.config.environment import MONGO_URI

    # Minimal Flask app for the database connection
    app = Flask(__name__)
    mongo = PyMongo(app, uri=MONGO_URI)
    try:
        results = init_database(mongo.db)
    finally:
        mongo.cx.close()
    return 1 if results['errors'] else 0


if __name__ == '__main__':
    sys.exit(main())
