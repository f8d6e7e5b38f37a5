"""
Tests for registration, login, tokens and the auth decorators
"""

import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest import mock

import jwt
import mongomock

from insurewise_backend.app import create_app
from insurewise_backend.tests.api_test_case import API, ApiTestCase, PASSWORD, TEST_CONFIG


class TestRegistration(ApiTestCase):
    config_overrides = {'DEFAULT_WALLET_BALANCE': 2500.0}

    def test_register_creates_user_wallet_and_tokens(self):
        response = self.register('ada@example.com')

        self.assertEqual(response.status_code, 201)
        data = response.get_json()['data']
        self.assertEqual(data['user']['email'], 'ada@example.com')
        self.assertNotIn('password', data['user'])
        self.assertEqual(data['wallet']['balance'], 2500.0)
        self.assertIn('accessToken', data['tokens'])
        self.assertIn('refreshToken', data['tokens'])

        user = self.db.users.find_one({'email': 'ada@example.com'})
        self.assertNotEqual(user['password'], PASSWORD)
        # Opening balance is booked in the ledger
        opening = self.db.transactions.find_one({'userId': user['_id']})
        self.assertEqual(opening['type'], 'credit')
        self.assertEqual(opening['amount'], 2500.0)

    def test_duplicate_email_is_conflict(self):
        self.register('ada@example.com', phone_number='+2348011111111')
        response = self.register('ADA@example.com', phone_number='+2348022222222')

        self.assertEqual(response.status_code, 409)
        self.assertEqual(self.db.users.count_documents({}), 1)

    def test_duplicate_phone_is_conflict(self):
        self.register('ada@example.com', phone_number='+2348011111111')
        response = self.register('bola@example.com', phone_number='+2348011111111')

        self.assertEqual(response.status_code, 409)

    def test_invalid_payload_lists_every_field_error(self):
        response = self.client.post(f"{API}/auth/register", json={
            'email': 'not-an-email',
            'password': 'weak',
            'firstName': 'A',
            'lastName': 'Obi',
            'phoneNumber': '123',
        })

        self.assertEqual(response.status_code, 400)
        body = response.get_json()
        self.assertEqual(body['status'], 'error')
        fields = {error['field'] for error in body['errors']}
        self.assertEqual(fields, {'email', 'password', 'firstName', 'phoneNumber'})

    def test_underage_user_is_rejected(self):
        dob = (datetime.utcnow() - timedelta(days=365 * 10)).date().isoformat()
        response = self.register('kid@example.com', dateOfBirth=dob)

        self.assertEqual(response.status_code, 400)


class TestLoginAndTokens(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.user, self.headers = self.create_user('ada@example.com')

    def test_login_with_valid_credentials(self):
        response = self.login('ada@example.com')

        self.assertEqual(response.status_code, 200)
        self.assertIn('accessToken', response.get_json()['data']['tokens'])
        self.assertIsNotNone(self.db.users.find_one({'_id': self.user['_id']})['lastLogin'])

    def test_login_with_wrong_password(self):
        response = self.login('ada@example.com', 'Wrong-passw0rd')
        self.assertEqual(response.status_code, 401)

    def test_login_deactivated_account(self):
        self.db.users.update_one({'_id': self.user['_id']}, {'$set': {'isActive': False}})
        response = self.login('ada@example.com')
        self.assertEqual(response.status_code, 401)

    def test_me_requires_token(self):
        response = self.client.get(f"{API}/auth/me")
        self.assertEqual(response.status_code, 401)

    def test_me_with_token(self):
        response = self.client.get(f"{API}/auth/me", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        data = response.get_json()['data']
        self.assertEqual(data['user']['id'], str(self.user['_id']))
        self.assertEqual(data['wallet']['balance'], 0.0)

    def test_expired_token_is_rejected(self):
        token = jwt.encode(
            {'user_id': str(self.user['_id']), 'type': 'access',
             'exp': datetime.utcnow() - timedelta(minutes=1)},
            self.app.config['JWT_SECRET'], algorithm='HS256',
        )
        response = self.client.get(f"{API}/auth/me", headers={'Authorization': f"Bearer {token}"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()['message'], 'Token has expired')

    def test_refresh_token_cannot_be_used_as_access_token(self):
        refresh = self.login('ada@example.com').get_json()['data']['tokens']['refreshToken']
        response = self.client.get(f"{API}/auth/me", headers={'Authorization': f"Bearer {refresh}"})
        self.assertEqual(response.status_code, 401)

    def test_refresh_issues_new_tokens(self):
        refresh = self.login('ada@example.com').get_json()['data']['tokens']['refreshToken']
        response = self.client.post(f"{API}/auth/refresh-token", json={'refreshToken': refresh})

        self.assertEqual(response.status_code, 200)
        self.assertIn('accessToken', response.get_json()['data']['tokens'])

    def test_deactivated_user_token_is_rejected(self):
        self.db.users.update_one({'_id': self.user['_id']}, {'$set': {'isActive': False}})
        response = self.client.get(f"{API}/auth/me", headers=self.headers)
        self.assertEqual(response.status_code, 401)

    def test_change_password(self):
        response = self.client.put(f"{API}/auth/change-password", headers=self.headers, json={
            'currentPassword': PASSWORD,
            'newPassword': 'N3w-Passw0rd!',
        })

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.login('ada@example.com').status_code, 401)
        self.assertEqual(self.login('ada@example.com', 'N3w-Passw0rd!').status_code, 200)

    def test_change_password_with_wrong_current_password(self):
        response = self.client.put(f"{API}/auth/change-password", headers=self.headers, json={
            'currentPassword': 'Not-my-passw0rd',
            'newPassword': 'N3w-Passw0rd!',
        })
        self.assertEqual(response.status_code, 401)


class TestAppShell(ApiTestCase):

    def test_health_check(self):
        response = self.client.get('/health')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['message'], 'InsureWise API is running!')

    def test_unknown_route_returns_envelope(self):
        response = self.client.get(f"{API}/does-not-exist")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()['message'], f"Can't find {API}/does-not-exist on this server!")


class TestMongoConnection(unittest.TestCase):

    @mock.patch('insurewise_backend.app.PyMongo')
    def test_app_connects_with_flask_pymongo_when_none_is_given(self, mock_pymongo):
        client = mongomock.MongoClient()
        mock_pymongo.return_value = SimpleNamespace(cx=client, db=client['insurewise_live'])
        config = dict(TEST_CONFIG, MONGO_URI='mongodb://db.internal:27017/insurewise_live')

        app = create_app(config)

        mock_pymongo.assert_called_once_with(app, uri='mongodb://db.internal:27017/insurewise_live')
        self.assertIs(app.mongo, mock_pymongo.return_value)
        self.assertIn('wallets', client['insurewise_live'].list_collection_names())


if __name__ == '__main__':
    unittest.main()
