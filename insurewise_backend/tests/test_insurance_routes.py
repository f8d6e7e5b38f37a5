"""
Tests for insurance plans, subscriptions and individual contributions
"""

import unittest

from bson import ObjectId

from insurewise_backend.default_plans import DEFAULT_INSURANCE_PLANS
from insurewise_backend.tests.api_test_case import API, ApiTestCase


class TestInsurancePlans(ApiTestCase):

    def test_default_plans_are_seeded_once(self):
        self.assertEqual(self.db.insurance_plans.count_documents({}), len(DEFAULT_INSURANCE_PLANS))

        from insurewise_backend.models import DatabaseInitializer
        self.assertEqual(DatabaseInitializer(self.db).seed_default_plans(), 0)

    def test_list_plans_is_public_and_filterable(self):
        response = self.client.get(f"{API}/insurance-plans")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.get_json()['data']['plans']), len(DEFAULT_INSURANCE_PLANS))

        response = self.client.get(f"{API}/insurance-plans?tier=premium")
        tiers = {plan['tier'] for plan in response.get_json()['data']['plans']}
        self.assertEqual(tiers, {'premium'})

        self.assertEqual(self.client.get(f"{API}/insurance-plans?tier=gold").status_code, 400)

    def test_plan_detail(self):
        plan = self.db.insurance_plans.find_one({'name': 'Essential Health Saver'})

        response = self.client.get(f"{API}/insurance-plans/{plan['_id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['data']['plan']['premium']['monthly'], 90)

        self.assertEqual(self.client.get(f"{API}/insurance-plans/{ObjectId()}").status_code, 404)


class TestInsuranceSubscriptions(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.user, self.headers = self.create_user('ada@example.com', balance=900)
        self.plan = self.db.insurance_plans.find_one({'name': 'Essential Health Saver'})

    def subscribe(self, frequency='monthly', payment_method='wallet', plan_id=None):
        return self.client.post(
            f"{API}/insurance-subscriptions/subscribe/{plan_id or self.plan['_id']}",
            headers=self.headers,
            json={'frequency': frequency, 'paymentMethod': payment_method},
        )

    def test_subscribe_debits_wallet(self):
        response = self.subscribe('quarterly')

        self.assertEqual(response.status_code, 201)
        data = response.get_json()['data']
        self.assertEqual(data['subscription']['premiumAmount'], 260)
        self.assertEqual(data['walletBalance'], 640)

        subscription = self.db.insurance_subscriptions.find_one({'userId': self.user['_id']})
        self.assertTrue(subscription['isActive'])
        self.assertFalse(subscription['isClaimed'])
        debit = self.db.transactions.find_one({'_id': subscription['transactionId']})
        self.assertEqual(debit['category'], 'insurance_premium')
        self.assertEqual((subscription['endDate'] - subscription['startDate']).days // 28, 3)

    def test_insufficient_balance(self):
        response = self.subscribe('yearly')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.balance(self.user['_id']), 900)
        self.assertEqual(self.db.insurance_subscriptions.count_documents({}), 0)

    def test_only_wallet_payments(self):
        response = self.subscribe(payment_method='card')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.balance(self.user['_id']), 900)

    def test_unknown_or_inactive_plan(self):
        self.assertEqual(self.subscribe(plan_id=ObjectId()).status_code, 404)

        self.db.insurance_plans.update_one({'_id': self.plan['_id']}, {'$set': {'isActive': False}})
        self.assertEqual(self.subscribe().status_code, 404)

    def test_my_subscriptions_and_cancel(self):
        self.subscribe()

        response = self.client.get(f"{API}/insurance-subscriptions/my-subscriptions", headers=self.headers)
        subscriptions = response.get_json()['data']['subscriptions']
        self.assertEqual(len(subscriptions), 1)
        self.assertEqual(subscriptions[0]['plan']['name'], 'Essential Health Saver')

        subscription_id = subscriptions[0]['id']
        _, other_headers = self.create_user('bola@example.com')
        response = self.client.patch(f"{API}/insurance-subscriptions/cancel/{subscription_id}",
                                     headers=other_headers)
        self.assertEqual(response.status_code, 404)

        response = self.client.patch(f"{API}/insurance-subscriptions/cancel/{subscription_id}",
                                     headers=self.headers)
        self.assertEqual(response.status_code, 200)

        response = self.client.get(f"{API}/insurance-subscriptions/my-subscriptions", headers=self.headers)
        self.assertEqual(response.get_json()['data']['subscriptions'], [])


class TestIndividualContributions(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.user, self.headers = self.create_user('ada@example.com', balance=5000)

    def test_contribution_debits_wallet(self):
        response = self.client.post(f"{API}/contributions", headers=self.headers,
                                    json={'amount': 2000, 'contributionType': 'weekly'})

        self.assertEqual(response.status_code, 201)
        contribution = response.get_json()['data']['contribution']
        self.assertEqual(contribution['status'], 'paid')
        self.assertEqual(contribution['source'], 'individual')
        self.assertEqual(self.balance(self.user['_id']), 3000)
        debit = self.db.transactions.find_one({'category': 'individual_contribution'})
        self.assertEqual(str(debit['_id']), contribution['transactionId'])

    def test_insufficient_balance(self):
        response = self.client.post(f"{API}/contributions", headers=self.headers,
                                    json={'amount': 9000, 'contributionType': 'monthly'})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.db.individual_contributions.count_documents({}), 0)

    def test_validation(self):
        response = self.client.post(f"{API}/contributions", headers=self.headers,
                                    json={'amount': -1, 'contributionType': 'daily'})

        self.assertEqual(response.status_code, 400)
        fields = {error['field'] for error in response.get_json()['errors']}
        self.assertEqual(fields, {'amount', 'contributionType'})

    def test_history_filters_by_type(self):
        for contribution_type in ('weekly', 'monthly', 'weekly'):
            self.client.post(f"{API}/contributions", headers=self.headers,
                             json={'amount': 500, 'contributionType': contribution_type})

        response = self.client.get(f"{API}/contributions/history?type=weekly", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['pagination']['total'], 2)


if __name__ == '__main__':
    unittest.main()
