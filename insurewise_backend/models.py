from datetime import datetime
from typing import Dict, List, Optional, Any
import logging
import re

from bson import ObjectId

logger = logging.getLogger(__name__)


# Enumerations shared by blueprints, services and validation
USER_ROLES = ['user', 'admin']
CURRENCIES = ['NGN', 'USD', 'EUR', 'GBP']
TRANSACTION_TYPES = ['credit', 'debit']
TRANSACTION_STATUSES = ['pending', 'successful', 'failed', 'cancelled']
TRANSACTION_CATEGORIES = [
    'wallet_funding', 'wallet_withdrawal', 'wallet_transfer', 'group_savings',
    'group_savings_payout', 'insurance_premium', 'individual_contribution', 'other',
]
CLAIM_TYPES = ['medical', 'auto', 'home', 'life', 'other']
CLAIM_STATUSES = ['pending', 'under_review', 'approved', 'declined', 'paid']
GROUP_FREQUENCIES = ['weekly', 'monthly']
GROUP_STATUSES = ['draft', 'active', 'completed', 'cancelled']
PLAN_TIERS = ['basic', 'standard', 'premium']
SUBSCRIPTION_FREQUENCIES = ['monthly', 'quarterly', 'yearly']
INDIVIDUAL_CONTRIBUTION_TYPES = ['weekly', 'monthly']


class DatabaseSchema:
    """
    Centralized database schema definitions for all collections.
    Provides document shapes and index definitions.
    """

    # ==================== USERS COLLECTION ====================

    @staticmethod
    def get_user_schema() -> Dict[str, Any]:
        """
        Schema for users collection.
        Stores authentication, profile and role.
        """
        return {
            '_id': ObjectId,
            'email': str,  # Required, unique, lowercase
            'password': str,  # Required, hashed with werkzeug.security
            'firstName': str,  # Required, max 50
            'lastName': str,  # Required, max 50
            'phoneNumber': str,  # Required, unique
            'dateOfBirth': Optional[datetime],  # Must be 18+
            'address': Optional[str],  # Max 200
            'profilePicture': Optional[str],  # URL
            'role': str,  # 'user' or 'admin', default: 'user'
            'isActive': bool,  # default: True
            'isEmailVerified': bool,
            'isPhoneVerified': bool,
            'lastLogin': Optional[datetime],
            'passwordChangedAt': Optional[datetime],
            'createdAt': datetime,
            'updatedAt': datetime,
        }

    @staticmethod
    def get_user_indexes() -> List[Dict[str, Any]]:
        """Define indexes for users collection."""
        return [
            {'keys': [('email', 1)], 'unique': True, 'name': 'email_unique'},
            {'keys': [('phoneNumber', 1)], 'unique': True, 'name': 'phone_unique'},
            {'keys': [('role', 1)], 'name': 'role_index'},
            {'keys': [('createdAt', -1)], 'name': 'created_at_desc'},
        ]

    # ==================== WALLETS COLLECTION ====================

    @staticmethod
    def get_wallet_schema() -> Dict[str, Any]:
        """
        Schema for wallets collection.
        One wallet per user. Balance only changes through WalletLedger.
        """
        return {
            '_id': ObjectId,
            'userId': ObjectId,  # Unique
            'balance': float,  # Never negative
            'currency': str,  # NGN, USD, EUR, GBP
            'transactions': List[ObjectId],  # Append-only
            'isActive': bool,
            'createdAt': datetime,
            'updatedAt': datetime,
        }

    @staticmethod
    def get_wallet_indexes() -> List[Dict[str, Any]]:
        """Define indexes for wallets collection."""
        return [
            {'keys': [('userId', 1)], 'unique': True, 'name': 'user_wallet_unique'},
        ]

    @staticmethod
    def get_wallet_validator() -> Dict[str, Any]:
        """Server-side validator for wallets: rejects any write leaving balance < 0."""
        return {
            '$jsonSchema': {
                'bsonType': 'object',
                'required': ['userId', 'balance'],
                'properties': {
                    'userId': {'bsonType': 'objectId'},
                    'balance': {
                        'bsonType': ['double', 'int', 'long', 'decimal'],
                        'minimum': 0,
                    },
                },
            }
        }

    # ==================== TRANSACTIONS COLLECTION ====================

    @staticmethod
    def get_transaction_schema() -> Dict[str, Any]:
        """
        Schema for transactions collection.
        Ledger entries; immutable once status is terminal.
        """
        return {
            '_id': ObjectId,
            'walletId': ObjectId,
            'userId': ObjectId,
            'type': str,  # credit, debit
            'amount': float,  # > 0
            'currency': str,
            'description': str,
            'reference': str,  # Unique
            'status': str,  # pending, successful, failed, cancelled
            'category': str,  # See TRANSACTION_CATEGORIES
            'paymentMethod': Optional[str],
            'metadata': Dict[str, Any],
            'failureReason': Optional[str],
            'createdAt': datetime,
            'updatedAt': datetime,
        }

    @staticmethod
    def get_transaction_indexes() -> List[Dict[str, Any]]:
        """Define indexes for transactions collection."""
        return [
            {'keys': [('reference', 1)], 'unique': True, 'name': 'reference_unique'},
            {'keys': [('userId', 1), ('createdAt', -1)], 'name': 'user_created_at'},
            {'keys': [('walletId', 1), ('createdAt', -1)], 'name': 'wallet_created_at'},
            {'keys': [('status', 1)], 'name': 'status_index'},
        ]

    # ==================== CLAIMS COLLECTION ====================

    @staticmethod
    def get_claim_schema() -> Dict[str, Any]:
        """Schema for claims collection."""
        return {
            '_id': ObjectId,
            'userId': ObjectId,
            'type': str,  # medical, auto, home, life, other
            'title': str,  # 5-100 chars
            'description': str,  # 10-1000 chars
            'amount': float,  # > 0
            'currency': str,
            'status': str,  # pending, under_review, approved, declined, paid
            'receiptUrl': Optional[str],
            'documents': List[str],  # URLs
            'mlAnalysisResult': Optional[Dict[str, Any]],
            # mlAnalysisResult structure:
            # {
            #     'confidence': float,  # 0-1
            #     'recommendation': str,  # approve, decline, manual_review
            #     'extractedData': dict,
            #     'processedAt': datetime
            # }
            'reviewedBy': Optional[ObjectId],
            'reviewedAt': Optional[datetime],
            'reviewNotes': Optional[str],  # Max 500
            'approvedAmount': Optional[float],
            'paidAt': Optional[datetime],
            'createdAt': datetime,
            'updatedAt': datetime,
        }

    @staticmethod
    def get_claim_indexes() -> List[Dict[str, Any]]:
        """Define indexes for claims collection."""
        return [
            {'keys': [('userId', 1), ('createdAt', -1)], 'name': 'user_created_at'},
            {'keys': [('status', 1), ('createdAt', 1)], 'name': 'status_fifo'},
        ]

    # ==================== GROUP SAVINGS COLLECTION ====================

    @staticmethod
    def get_group_savings_schema() -> Dict[str, Any]:
        """
        Schema for group_savings collection.
        Members and contributions are embedded so that every rotation step
        is a single-document update.
        """
        return {
            '_id': ObjectId,
            'name': str,  # Max 100
            'description': Optional[str],  # Max 500
            'creator': ObjectId,
            'members': List[Dict[str, Any]],
            # members structure:
            # [{
            #     'user': ObjectId,
            #     'position': int,  # >= 1, rotation order
            #     'joinedAt': datetime,
            #     'isActive': bool,
            #     'contributionsMade': int,
            #     'lastContributionDate': Optional[datetime],
            #     'receivedPayout': Optional[datetime]
            # }]
            'contributions': List[Dict[str, Any]],
            # contributions structure:
            # [{
            #     '_id': ObjectId,
            #     'member': ObjectId,
            #     'amount': float,
            #     'dueDate': datetime,
            #     'paidDate': Optional[datetime],
            #     'transactionId': Optional[ObjectId],
            #     'status': str,  # pending, paid, overdue
            #     'cycle': int
            # }]
            'contributionAmount': float,  # >= 1000
            'frequency': str,  # weekly, monthly
            'startDate': datetime,
            'endDate': datetime,
            'currentCycle': int,  # >= 1
            'currentRecipient': Optional[ObjectId],
            'status': str,  # draft, active, completed, cancelled
            'maxMembers': int,  # 2-50
            'totalContributed': float,
            'totalPaidOut': float,
            'nextContributionDate': datetime,
            'nextPayoutDate': datetime,
            'rules': {
                'allowEarlyWithdrawal': bool,
                'penaltyAmount': float,
                'minimumContributions': int,
                'autoKickInactive': bool,
            },
            'createdAt': datetime,
            'updatedAt': datetime,
        }

    @staticmethod
    def get_group_savings_indexes() -> List[Dict[str, Any]]:
        """Define indexes for group_savings collection."""
        return [
            {'keys': [('members.user', 1), ('status', 1)], 'name': 'member_status'},
            {'keys': [('creator', 1)], 'name': 'creator_index'},
            {'keys': [('status', 1), ('createdAt', -1)], 'name': 'status_created_at'},
        ]

    # ==================== INSURANCE PLANS COLLECTION ====================

    @staticmethod
    def get_insurance_plan_schema() -> Dict[str, Any]:
        """Schema for insurance_plans collection."""
        return {
            '_id': ObjectId,
            'name': str,
            'tier': str,  # basic, standard, premium
            'coverage': {
                'hospitalization': bool,
                'outpatient': bool,
                'dental': bool,
                'optical': bool,
                'maternity': bool,
                'preExistingConditions': bool,
            },
            'premium': {
                'monthly': float,
                'quarterly': float,
                'yearly': float,
            },
            'maxCoverageAmount': float,
            'waitingPeriod': int,  # Days, default: 30
            'description': str,
            'isActive': bool,
            'createdAt': datetime,
            'updatedAt': datetime,
        }

    @staticmethod
    def get_insurance_plan_indexes() -> List[Dict[str, Any]]:
        """Define indexes for insurance_plans collection."""
        return [
            {'keys': [('name', 1)], 'unique': True, 'name': 'plan_name_unique'},
            {'keys': [('tier', 1), ('isActive', 1)], 'name': 'tier_active'},
        ]

    # ==================== INSURANCE SUBSCRIPTIONS COLLECTION ====================

    @staticmethod
    def get_insurance_subscription_schema() -> Dict[str, Any]:
        """Schema for insurance_subscriptions collection."""
        return {
            '_id': ObjectId,
            'userId': ObjectId,
            'planId': ObjectId,
            'frequency': str,  # monthly, quarterly, yearly
            'premiumAmount': float,
            'startDate': datetime,
            'endDate': datetime,
            'isActive': bool,
            'isClaimed': bool,
            'transactionId': Optional[ObjectId],  # Wallet debit that paid for it
            'cancelledAt': Optional[datetime],
            'createdAt': datetime,
            'updatedAt': datetime,
        }

    @staticmethod
    def get_insurance_subscription_indexes() -> List[Dict[str, Any]]:
        """Define indexes for insurance_subscriptions collection."""
        return [
            {'keys': [('userId', 1), ('isActive', 1)], 'name': 'user_active'},
        ]

    # ==================== INDIVIDUAL CONTRIBUTIONS COLLECTION ====================

    @staticmethod
    def get_individual_contribution_schema() -> Dict[str, Any]:
        """Schema for individual_contributions collection."""
        return {
            '_id': ObjectId,
            'userId': ObjectId,
            'amount': float,  # > 0
            'currency': str,
            'contributionType': str,  # weekly, monthly
            'reference': Optional[str],
            'transactionId': ObjectId,
            'status': str,  # pending, paid, failed
            'source': str,  # individual
            'contributionDate': datetime,
            'metadata': Optional[Dict[str, Any]],
            'createdAt': datetime,
            'updatedAt': datetime,
        }

    @staticmethod
    def get_individual_contribution_indexes() -> List[Dict[str, Any]]:
        """Define indexes for individual_contributions collection."""
        return [
            {'keys': [('userId', 1), ('contributionDate', -1)], 'name': 'user_contribution_date'},
        ]


class DatabaseInitializer:
    """
    Database initialization and management utilities.
    Handles collection creation, index setup and default data.
    """

    def __init__(self, mongo_db):
        """
        Initialize with MongoDB database instance.

        Args:
            mongo_db: PyMongo database instance
        """
        self.db = mongo_db
        self.schema = DatabaseSchema()

    def get_collection_indexes(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            'users': self.schema.get_user_indexes(),
            'wallets': self.schema.get_wallet_indexes(),
            'transactions': self.schema.get_transaction_indexes(),
            'claims': self.schema.get_claim_indexes(),
            'group_savings': self.schema.get_group_savings_indexes(),
            'insurance_plans': self.schema.get_insurance_plan_indexes(),
            'insurance_subscriptions': self.schema.get_insurance_subscription_indexes(),
            'individual_contributions': self.schema.get_individual_contribution_indexes(),
        }

    def get_collection_validators(self) -> Dict[str, Dict[str, Any]]:
        return {
            'wallets': self.schema.get_wallet_validator(),
        }

    def initialize_collections(self):
        """
        Initialize all collections with proper indexes.
        Safe to run multiple times - will skip if collections exist.
        """
        results = {
            'created': [],
            'existing': [],
            'indexes_created': [],
            'validators_applied': [],
            'errors': []
        }

        existing_collections = self.db.list_collection_names()

        for collection_name, indexes in self.get_collection_indexes().items():
            try:
                if collection_name in existing_collections:
                    results['existing'].append(collection_name)
                    logger.debug("Collection '%s' already exists", collection_name)
                else:
                    self.db.create_collection(collection_name)
                    results['created'].append(collection_name)
                    logger.info("Created collection '%s'", collection_name)

                collection = self.db[collection_name]
                existing_indexes = collection.index_information()

                for index_def in indexes:
                    index_name = index_def.get('name')

                    if index_name and index_name in existing_indexes:
                        continue

                    # Same key pattern under another name counts as present
                    same_keys = any(
                        list(info.get('key', [])) == index_def['keys']
                        for name, info in existing_indexes.items()
                        if name != '_id_'
                    )
                    if same_keys:
                        continue

                    created_index_name = collection.create_index(
                        index_def['keys'],
                        unique=index_def.get('unique', False),
                        name=index_name
                    )
                    results['indexes_created'].append(f"{collection_name}.{created_index_name}")
                    logger.info("Created index '%s' on '%s'", created_index_name, collection_name)

            except Exception as e:
                error_msg = f"Failed to initialize collection {collection_name}: {str(e)}"
                results['errors'].append(error_msg)
                logger.error(error_msg)

        # Storage-level backstop: the server refuses writes that break these
        for collection_name, validator in self.get_collection_validators().items():
            try:
                self.db.command(
                    'collMod', collection_name,
                    validator=validator,
                    validationLevel='strict',
                    validationAction='error',
                )
                results['validators_applied'].append(collection_name)
                logger.info("Applied validator on '%s'", collection_name)
            except Exception as e:
                error_msg = f"Failed to apply validator on {collection_name}: {str(e)}"
                results['errors'].append(error_msg)
                logger.error(error_msg)

        return results

    def seed_default_plans(self, plans=None) -> int:
        """Insert the default insurance plans when the collection is empty."""
        from insurewise_backend.default_plans import DEFAULT_INSURANCE_PLANS

        if self.db.insurance_plans.count_documents({}) > 0:
            return 0

        now = datetime.utcnow()
        documents = [
            dict(plan, createdAt=now, updatedAt=now)
            for plan in (plans if plans is not None else DEFAULT_INSURANCE_PLANS)
        ]
        if not documents:
            return 0
        self.db.insurance_plans.insert_many(documents)
        logger.info("Seeded %d default insurance plans", len(documents))
        return len(documents)

    def validate_collection_exists(self, collection_name: str) -> bool:
        return collection_name in self.db.list_collection_names()

    def get_collection_stats(self, collection_name: str) -> Dict[str, Any]:
        """
        Get document and index counts for a collection.

        Args:
            collection_name: Name of the collection

        Returns:
            dict: Collection statistics
        """
        if not self.validate_collection_exists(collection_name):
            return {'error': f"Collection '{collection_name}' does not exist"}

        collection = self.db[collection_name]
        return {
            'name': collection_name,
            'count': collection.count_documents({}),
            'indexes': len(collection.index_information()),
        }


class ModelValidator:
    """
    Validation utilities for model data.
    """

    @staticmethod
    def validate_email(email: str) -> bool:
        """Validate email format."""
        pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        return re.match(pattern, email or '') is not None

    @staticmethod
    def validate_amount(amount) -> bool:
        """Validate amount is positive."""
        try:
            return float(amount) > 0
        except (ValueError, TypeError):
            return False

    @staticmethod
    def validate_wallet_balance(balance) -> bool:
        """Balance backstop: a wallet can never be persisted below zero."""
        try:
            return float(balance) >= 0
        except (ValueError, TypeError):
            return False


__all__ = [
    'DatabaseSchema',
    'DatabaseInitializer',
    'ModelValidator',
]
