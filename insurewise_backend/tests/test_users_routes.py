"""
Tests for profile management and the admin user endpoints
"""

import unittest

from insurewise_backend.tests.api_test_case import API, ApiTestCase


class TestProfile(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.user, self.headers = self.create_user('ada@example.com', phone_number='+2348011111111')

    def test_update_profile(self):
        response = self.client.put(f"{API}/users/profile", headers=self.headers, json={
            'firstName': 'Adaeze',
            'address': '12 Marina Road, Lagos',
        })

        self.assertEqual(response.status_code, 200)
        user = response.get_json()['data']['user']
        self.assertEqual(user['firstName'], 'Adaeze')
        self.assertEqual(user['address'], '12 Marina Road, Lagos')

    def test_phone_number_taken_by_another_user(self):
        self.create_user('bola@example.com', phone_number='+2348022222222')
        response = self.client.put(f"{API}/users/profile", headers=self.headers, json={
            'phoneNumber': '+2348022222222',
        })
        self.assertEqual(response.status_code, 409)

    def test_profile_picture_must_be_url(self):
        response = self.client.put(f"{API}/users/profile-picture", headers=self.headers,
                                   json={'profilePicture': 'not a url'})
        self.assertEqual(response.status_code, 400)

        response = self.client.put(f"{API}/users/profile-picture", headers=self.headers,
                                   json={'profilePicture': 'https://cdn.example.com/ada.png'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.db.users.find_one({'_id': self.user['_id']})['profilePicture'],
                         'https://cdn.example.com/ada.png')

    def test_deactivate_disables_user_and_wallet(self):
        response = self.client.delete(f"{API}/users/deactivate", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        self.assertFalse(self.db.users.find_one({'_id': self.user['_id']})['isActive'])
        self.assertFalse(self.db.wallets.find_one({'userId': self.user['_id']})['isActive'])
        # The old token no longer works
        self.assertEqual(self.client.get(f"{API}/users/profile", headers=self.headers).status_code, 401)

    def test_get_user_by_id_owner_only(self):
        other, other_headers = self.create_user('bola@example.com')

        own = self.client.get(f"{API}/users/{self.user['_id']}", headers=self.headers)
        self.assertEqual(own.status_code, 200)

        forbidden = self.client.get(f"{API}/users/{self.user['_id']}", headers=other_headers)
        self.assertEqual(forbidden.status_code, 403)


class TestAdminUsers(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.admin, self.admin_headers = self.create_user('admin@example.com', role='admin')
        self.user, self.headers = self.create_user('ada@example.com', first_name='Ada')
        self.create_user('bola@example.com', first_name='Bola')

    def test_list_users_requires_admin(self):
        response = self.client.get(f"{API}/users", headers=self.headers)
        self.assertEqual(response.status_code, 403)

    def test_list_users_requires_token(self):
        response = self.client.get(f"{API}/users")
        self.assertEqual(response.status_code, 401)

    def test_list_users_paginated_with_search(self):
        response = self.client.get(f"{API}/users?limit=2", headers=self.admin_headers)

        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(len(body['data']['users']), 2)
        self.assertEqual(body['pagination'], {'page': 1, 'limit': 2, 'total': 3, 'pages': 2})

        response = self.client.get(f"{API}/users?search=bola", headers=self.admin_headers)
        emails = [user['email'] for user in response.get_json()['data']['users']]
        self.assertEqual(emails, ['bola@example.com'])

    def test_admin_reads_any_user(self):
        response = self.client.get(f"{API}/users/{self.user['_id']}", headers=self.admin_headers)
        self.assertEqual(response.status_code, 200)

    def test_update_role(self):
        response = self.client.put(f"{API}/users/{self.user['_id']}/role", headers=self.admin_headers,
                                   json={'role': 'admin'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.db.users.find_one({'_id': self.user['_id']})['role'], 'admin')

    def test_admin_cannot_change_own_role(self):
        response = self.client.put(f"{API}/users/{self.admin['_id']}/role", headers=self.admin_headers,
                                   json={'role': 'user'})
        self.assertEqual(response.status_code, 403)

    def test_invalid_user_id(self):
        response = self.client.put(f"{API}/users/not-an-id/role", headers=self.admin_headers,
                                   json={'role': 'user'})
        self.assertEqual(response.status_code, 400)


if __name__ == '__main__':
    unittest.main()
