"""
Unit tests for the wallet ledger and the wallet endpoints
"""

import re
import unittest
from unittest import mock

import mongomock
from bson import ObjectId

from insurewise_backend.errors import NotFoundError, ValidationError
from insurewise_backend.models import DatabaseInitializer, DatabaseSchema
from insurewise_backend.services.wallet_ledger import WalletLedger, generate_reference
from insurewise_backend.tests.api_test_case import API, ApiTestCase


class TestWalletCollectionValidator(unittest.TestCase):

    def setUp(self):
        self.db = mongomock.MongoClient()['insurewise_test']

    def test_wallets_reject_negative_balance_at_storage_level(self):
        validator = DatabaseSchema.get_wallet_validator()
        balance_rule = validator['$jsonSchema']['properties']['balance']
        self.assertEqual(balance_rule['minimum'], 0)
        self.assertIn('balance', validator['$jsonSchema']['required'])

        with mock.patch.object(self.db, 'command', return_value={'ok': 1.0}) as command:
            results = DatabaseInitializer(self.db).initialize_collections()

        command.assert_called_once_with(
            'collMod', 'wallets',
            validator=validator,
            validationLevel='strict',
            validationAction='error',
        )
        self.assertEqual(results['validators_applied'], ['wallets'])
        self.assertEqual(results['errors'], [])

    def test_validator_failure_is_reported_and_indexes_still_built(self):
        with mock.patch.object(self.db, 'command', side_effect=RuntimeError('not authorized')):
            results = DatabaseInitializer(self.db).initialize_collections()

        self.assertEqual(results['validators_applied'], [])
        self.assertEqual(len(results['errors']), 1)
        self.assertIn('wallets', results['errors'][0])
        self.assertIn('user_wallet_unique', self.db.wallets.index_information())


class TestWalletLedger(unittest.TestCase):

    def setUp(self):
        self.db = mongomock.MongoClient()['insurewise_test']
        DatabaseInitializer(self.db).initialize_collections()
        self.ledger = WalletLedger(self.db)
        self.user_id = ObjectId()
        self.wallet = self.ledger.create_wallet(self.user_id, initial_balance=5000)

    def test_opening_balance_is_a_credit(self):
        self.assertEqual(self.wallet['balance'], 5000)
        transactions = list(self.db.transactions.find({'walletId': self.wallet['_id']}))
        self.assertEqual(len(transactions), 1)
        self.assertEqual(transactions[0]['type'], 'credit')
        self.assertEqual(self.wallet['transactions'], [transactions[0]['_id']])

    def test_credit_records_balances(self):
        transaction = self.ledger.credit(self.wallet, 1500, 'Top up')

        self.assertEqual(transaction['status'], 'successful')
        self.assertEqual(transaction['balanceBefore'], 5000)
        self.assertEqual(transaction['balanceAfter'], 6500)
        self.assertTrue(transaction['reference'].startswith('CR_'))
        self.assertEqual(self.ledger.get_wallet(self.user_id)['balance'], 6500)

    def test_debit_with_insufficient_funds_changes_nothing(self):
        result = self.ledger.debit(self.wallet, 10000, 'Too much')

        self.assertIsNone(result)
        self.assertEqual(self.ledger.get_wallet(self.user_id)['balance'], 5000)
        self.assertEqual(self.db.transactions.count_documents({'type': 'debit'}), 0)

    def test_debit_exact_balance_reaches_zero(self):
        transaction = self.ledger.debit(self.wallet, 5000, 'Everything')

        self.assertEqual(transaction['balanceAfter'], 0)
        self.assertIsNone(self.ledger.debit(self.wallet, 0.01, 'One kobo more'))
        self.assertEqual(self.ledger.get_wallet(self.user_id)['balance'], 0)

    def test_non_positive_amounts_are_rejected(self):
        with self.assertRaises(ValidationError):
            self.ledger.credit(self.wallet, 0, 'Nothing')
        with self.assertRaises(ValidationError):
            self.ledger.debit(self.wallet, -5, 'Negative')

    def test_inactive_wallet_cannot_be_debited(self):
        self.db.wallets.update_one({'_id': self.wallet['_id']}, {'$set': {'isActive': False}})
        wallet = self.ledger.get_wallet(self.user_id)

        self.assertFalse(self.ledger.can_debit(wallet, 100))
        self.assertIsNone(self.ledger.debit(wallet, 100, 'Blocked'))

    def test_can_debit(self):
        self.assertTrue(self.ledger.can_debit(self.wallet, 5000))
        self.assertFalse(self.ledger.can_debit(self.wallet, 5000.01))
        self.assertFalse(self.ledger.can_debit(self.wallet, 0))

    def test_transfer_uses_distinct_leg_references(self):
        other = self.ledger.create_wallet(ObjectId())
        debit_tx, credit_tx = self.ledger.transfer(self.wallet, other, 2000, 'Rent share')

        self.assertTrue(debit_tx['reference'].endswith('_DR'))
        self.assertTrue(credit_tx['reference'].endswith('_CR'))
        self.assertEqual(debit_tx['reference'][:-3], credit_tx['reference'][:-3])
        self.assertEqual(self.ledger.get_wallet(self.user_id)['balance'], 3000)
        self.assertEqual(self.db.wallets.find_one({'_id': other['_id']})['balance'], 2000)

    def test_transfer_to_self_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.ledger.transfer(self.wallet, self.wallet, 100)

    def test_pending_credit_settles_once(self):
        pending = self.ledger.create_pending_transaction(
            self.wallet, 2500, 'Funding', 'INS_1_ABCDEF', category='wallet_funding', payment_method='paystack',
        )
        self.assertEqual(pending['status'], 'pending')
        self.assertEqual(self.ledger.get_wallet(self.user_id)['balance'], 5000)

        self.assertIsNotNone(self.ledger.apply_pending_credit('INS_1_ABCDEF'))
        self.assertIsNone(self.ledger.apply_pending_credit('INS_1_ABCDEF'))

        self.assertEqual(self.ledger.get_wallet(self.user_id)['balance'], 7500)
        settled = self.db.transactions.find_one({'reference': 'INS_1_ABCDEF'})
        self.assertEqual(settled['status'], 'successful')
        self.assertEqual(settled['balanceAfter'], 7500)

    def test_failed_transaction_is_terminal(self):
        self.ledger.create_pending_transaction(
            self.wallet, 2500, 'Funding', 'INS_2_ABCDEF', category='wallet_funding', payment_method='paystack',
        )
        self.assertIsNotNone(self.ledger.mark_transaction('INS_2_ABCDEF', 'failed', reason='Declined'))

        self.assertIsNone(self.ledger.apply_pending_credit('INS_2_ABCDEF'))
        self.assertEqual(self.ledger.get_wallet(self.user_id)['balance'], 5000)

    def test_missing_wallet(self):
        with self.assertRaises(NotFoundError):
            self.ledger.get_wallet(ObjectId())

    def test_generate_reference_format(self):
        self.assertRegex(generate_reference('dr'), re.compile(r'^DR_\d{13}_[A-Z0-9]{9}$'))


class TestWalletRoutes(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.user, self.headers = self.create_user('ada@example.com', balance=5000)
        self.other, self.other_headers = self.create_user('bola@example.com')

    def test_balance(self):
        response = self.client.get(f"{API}/wallet/balance", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['data']['wallet']['balance'], 5000)

    def test_transactions_are_paginated_and_filtered(self):
        self.ledger.debit(self.ledger.get_wallet(self.user['_id']), 100, 'Airtime')

        response = self.client.get(f"{API}/wallet/transactions?type=debit", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(len(body['data']['transactions']), 1)
        self.assertEqual(body['pagination']['total'], 1)

        response = self.client.get(f"{API}/wallet/transactions?type=refund", headers=self.headers)
        self.assertEqual(response.status_code, 400)

    def test_other_users_transaction_is_not_found(self):
        transaction = self.db.transactions.find_one({'userId': self.user['_id']})
        response = self.client.get(f"{API}/wallet/transactions/{transaction['_id']}", headers=self.other_headers)
        self.assertEqual(response.status_code, 404)

    def test_summary(self):
        self.ledger.debit(self.ledger.get_wallet(self.user['_id']), 1200, 'Premium')

        response = self.client.get(f"{API}/wallet/summary", headers=self.headers)

        summary = response.get_json()['data']['summary']
        self.assertEqual(summary['totalCredit'], 5000)
        self.assertEqual(summary['totalDebit'], 1200)
        self.assertEqual(summary['netBalance'], 3800)
        self.assertEqual(summary['totalTransactions'], 2)

    def test_transfer_by_email(self):
        response = self.client.post(f"{API}/wallet/transfer", headers=self.headers, json={
            'recipientEmail': 'bola@example.com',
            'amount': 1500,
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.balance(self.user['_id']), 3500)
        self.assertEqual(self.balance(self.other['_id']), 1500)

    def test_transfer_more_than_balance(self):
        response = self.client.post(f"{API}/wallet/transfer", headers=self.headers, json={
            'recipientEmail': 'bola@example.com',
            'amount': 50000,
        })

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.balance(self.user['_id']), 5000)

    def test_transfer_to_self(self):
        response = self.client.post(f"{API}/wallet/transfer", headers=self.headers, json={
            'recipientEmail': 'ada@example.com',
            'amount': 100,
        })
        self.assertEqual(response.status_code, 400)

    def test_fund_starts_paystack_checkout(self):
        response = self.client.post(f"{API}/wallet/fund", headers=self.headers, json={'amount': 2000})

        self.assertEqual(response.status_code, 200)
        data = response.get_json()['data']
        self.assertEqual(data['authorization_url'], f"https://checkout.paystack.com/{data['reference']}")
        pending = self.db.transactions.find_one({'reference': data['reference']})
        self.assertEqual(pending['status'], 'pending')
        self.assertEqual(pending['amount'], 2000)
        self.assertEqual(self.balance(self.user['_id']), 5000)


if __name__ == '__main__':
    unittest.main()
