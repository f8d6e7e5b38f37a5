"""
Shared fixtures for API tests: an app wired to an in-memory mongomock
database, plus helpers to register users and fund their wallets.
"""

import unittest
from types import SimpleNamespace

import mongomock

from insurewise_backend.app import create_app


TEST_CONFIG = {
    'TESTING': True,
    'APP_ENV': 'testing',
    'RATELIMIT_ENABLED': False,
    'CLAIM_ANALYSIS_SYNC': True,
    'PAYSTACK_SECRET_KEY': 'sk_test_insurewise',
    'PAYSTACK_PUBLIC_KEY': 'pk_test_insurewise',
    'PAYSTACK_MOCK': True,
    'DEFAULT_WALLET_BALANCE': 0.0,
    'ADMIN_EMAIL': '',
    'ADMIN_PASSWORD': '',
}

API = '/api/v1'
PASSWORD = 'Passw0rd!'


class ApiTestCase(unittest.TestCase):
    """Base class: fresh app and database per test."""

    config_overrides = {}

    def setUp(self):
        client = mongomock.MongoClient()
        self.mongo = SimpleNamespace(cx=client, db=client['insurewise_test'])
        self.db = self.mongo.db
        self.app = create_app(dict(TEST_CONFIG, **self.config_overrides), mongo=self.mongo)
        self.client = self.app.test_client()
        self.ledger = self.app.extensions['insurewise']['ledger']
        self._phone_counter = 0

    def register(self, email, first_name='Ada', last_name='Obi', phone_number=None, **extra):
        self._phone_counter += 1
        payload = {
            'email': email,
            'password': PASSWORD,
            'firstName': first_name,
            'lastName': last_name,
            'phoneNumber': phone_number or f"+23480{self._phone_counter:08d}",
        }
        payload.update(extra)
        return self.client.post(f"{API}/auth/register", json=payload)

    def create_user(self, email, role='user', balance=0.0, **extra):
        """Register a user and return (user document, auth headers)."""
        response = self.register(email, **extra)
        self.assertEqual(response.status_code, 201, response.get_json())
        body = response.get_json()['data']
        user = self.db.users.find_one({'email': email})

        if role != 'user':
            self.db.users.update_one({'_id': user['_id']}, {'$set': {'role': role}})
            user = self.db.users.find_one({'_id': user['_id']})
            # Role is part of the token payload, so sign in again
            body = self.login(email).get_json()['data']

        if balance:
            self.fund(user['_id'], balance)
        return user, {'Authorization': f"Bearer {body['tokens']['accessToken']}"}

    def login(self, email, password=PASSWORD):
        return self.client.post(f"{API}/auth/login", json={'email': email, 'password': password})

    def fund(self, user_id, amount):
        wallet = self.ledger.get_wallet(user_id)
        return self.ledger.credit(wallet, amount, 'Test funding', category='wallet_funding')

    def balance(self, user_id):
        return self.ledger.get_wallet(user_id)['balance']
