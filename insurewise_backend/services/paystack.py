"""
Paystack payment gateway adapter

PaystackClient wraps the HTTP API (or a mocked checkout when no secret key is
configured). PaymentService ties Paystack references to pending wallet-funding
transactions and settles them from either user-polled verification or the
webhook. Settlement goes through WalletLedger.apply_pending_credit, which
only credits for the caller that flips the transaction out of `pending`.
"""

from datetime import datetime
import hashlib
import hmac
import json
import logging
import time

import requests

from insurewise_backend.errors import AppError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MIN_AMOUNT_KOBO = 10000  # NGN 100
MAX_AMOUNT_KOBO = 100000000  # NGN 1,000,000
DAILY_LIMIT_KOBO = 500000000
SUPPORTED_CHANNELS = ['card', 'bank', 'ussd', 'qr', 'mobile_money', 'bank_transfer']


def kobo_to_naira(amount_kobo):
    return round(float(amount_kobo) / 100, 2)


def naira_to_kobo(amount):
    return int(round(float(amount) * 100))


def generate_payment_reference(user_id):
    return f"INS_{int(time.time() * 1000)}_{str(user_id)[-6:]}"


def verify_webhook_signature(secret_key, payload, signature):
    """HMAC-SHA512 of the raw request body, hex encoded, compared in constant time."""
    if not signature or not secret_key:
        return False
    expected_signature = hmac.new(
        secret_key.encode('utf-8'),
        payload,
        hashlib.sha512
    ).hexdigest()
    return hmac.compare_digest(signature.encode('utf-8'), expected_signature.encode('utf-8'))


class PaystackClient:
    def __init__(self, secret_key, base_url='https://api.paystack.co', timeout=30, mock=False):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.mock = mock

    def _make_paystack_request(self, endpoint, method='GET', data=None):
        """Make authenticated request to Paystack API"""
        headers = {
            'Authorization': f'Bearer {self.secret_key}',
            'Content-Type': 'application/json'
        }
        url = f"{self.base_url}{endpoint}"

        try:
            if method == 'GET':
                response = requests.get(url, headers=headers, timeout=self.timeout)
            elif method == 'POST':
                response = requests.post(url, headers=headers, json=data, timeout=self.timeout)
            else:
                raise ValueError(f"Unsupported HTTP method: {method}")
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Paystack API error on %s %s: %s", method, endpoint, e)
            return {'status': False, 'message': f'Payment service error: {str(e)}'}

    def initialize_transaction(self, email, amount_kobo, reference, metadata=None, callback_url=None):
        if self.mock:
            return {
                'status': True,
                'message': 'Authorization URL created',
                'data': {
                    'authorization_url': f"https://checkout.paystack.com/{reference}",
                    'access_code': f"access_code_{reference}",
                    'reference': reference,
                },
            }
        payload = {
            'email': email,
            'amount': int(amount_kobo),
            'reference': reference,
            'currency': 'NGN',
            'metadata': metadata or {},
        }
        if callback_url:
            payload['callback_url'] = callback_url
        return self._make_paystack_request('/transaction/initialize', 'POST', payload)

    def verify_transaction(self, reference, expected_amount_kobo=None):
        if self.mock:
            now = datetime.utcnow().isoformat() + 'Z'
            return {
                'status': True,
                'message': 'Verification successful',
                'data': {
                    'status': 'success',
                    'reference': reference,
                    'amount': expected_amount_kobo,
                    'gateway_response': 'Successful',
                    'paid_at': now,
                    'channel': 'card',
                    'currency': 'NGN',
                },
            }
        return self._make_paystack_request(f'/transaction/verify/{reference}')


class PaymentService:
    def __init__(self, db, ledger, client, secret_key, public_key=''):
        self.db = db
        self.ledger = ledger
        self.client = client
        self.secret_key = secret_key
        self.public_key = public_key

    # ==================== INITIALIZE ====================

    def initialize(self, user, amount_kobo, email=None, metadata=None):
        """Create a pending funding transaction and a Paystack checkout for it."""
        amount_kobo = int(amount_kobo)
        if amount_kobo < MIN_AMOUNT_KOBO or amount_kobo > MAX_AMOUNT_KOBO:
            raise ValidationError(
                f"Amount must be between {MIN_AMOUNT_KOBO} and {MAX_AMOUNT_KOBO} kobo",
                errors=[{'field': 'amount', 'message': 'Amount is outside the allowed range'}],
            )

        email = email or user['email']
        wallet = self.ledger.get_wallet(user['_id'])
        reference = generate_payment_reference(user['_id'])
        transaction = self.ledger.create_pending_transaction(
            wallet,
            kobo_to_naira(amount_kobo),
            'Wallet funding via Paystack',
            reference,
            category='wallet_funding',
            payment_method='paystack',
            metadata={'paymentMethod': 'paystack', 'email': email, **(metadata or {})},
        )

        response = self.client.initialize_transaction(
            email, amount_kobo, reference, metadata={'userId': str(user['_id']), 'transactionId': str(transaction['_id'])}
        )
        if not response.get('status'):
            self.ledger.mark_transaction(reference, 'failed', reason=response.get('message'))
            logger.warning("Paystack initialize failed for %s: %s", reference, response.get('message'))
            raise AppError(response.get('message') or 'Failed to initialize payment', 502)

        logger.info("Payment %s initialized for user %s: %d kobo", reference, user['_id'], amount_kobo)
        return {
            'authorization_url': response['data']['authorization_url'],
            'access_code': response['data']['access_code'],
            'reference': reference,
            'amount': transaction['amount'],
            'transactionId': transaction['_id'],
        }

    # ==================== VERIFY ====================

    def verify(self, user, reference):
        """User-polled verification of a pending funding transaction."""
        transaction = self.db.transactions.find_one({'reference': reference, 'userId': user['_id']})
        if not transaction:
            raise NotFoundError('Transaction not found')
        if transaction['status'] != 'pending':
            raise ValidationError('Transaction already processed')

        expected_kobo = naira_to_kobo(transaction['amount'])
        response = self.client.verify_transaction(reference, expected_kobo)
        data = response.get('data') or {}

        if response.get('status') and data.get('status') == 'success':
            if data.get('amount') is not None and int(data['amount']) != expected_kobo:
                self.ledger.mark_transaction(reference, 'failed', reason='Amount mismatch', provider_data=data)
                logger.warning("Amount mismatch on %s: expected %d got %s", reference, expected_kobo, data['amount'])
                raise ValidationError('Payment amount does not match transaction')

            settled = self.ledger.apply_pending_credit(reference, provider_data=_provider_summary(data))
            if settled is None:
                raise ValidationError('Transaction already processed')
            logger.info("Payment %s verified for user %s", reference, user['_id'])
            return {
                'transaction': self.db.transactions.find_one({'_id': settled['_id']}),
                'wallet': self.ledger.get_wallet(user['_id']),
                'paystack': {
                    'gateway_response': data.get('gateway_response'),
                    'paid_at': data.get('paid_at'),
                },
            }

        reason = data.get('gateway_response') or response.get('message') or 'Payment failed'
        self.ledger.mark_transaction(reference, 'failed', reason=reason, provider_data=_provider_summary(data))
        logger.warning("Payment verification failed for %s: %s", reference, reason)
        raise ValidationError('Payment verification failed')

    # ==================== WEBHOOK ====================

    def handle_webhook(self, payload, signature):
        """
        Validate and dispatch a Paystack event.

        Only a bad signature is reported back as an error. Processing failures
        are logged and the event is still acknowledged.
        """
        if not verify_webhook_signature(self.secret_key, payload, signature):
            logger.warning("Rejected Paystack webhook with invalid signature")
            raise ValidationError('Invalid signature')

        try:
            event = json.loads(payload)
        except ValueError:
            raise ValidationError('Invalid webhook payload')

        event_type = event.get('event')
        data = event.get('data') or {}
        handlers = {
            'charge.success': self._on_charge_success,
            'charge.failed': self._on_charge_failed,
            'transfer.success': self._on_transfer_success,
            'transfer.failed': self._on_transfer_failed,
        }
        handler = handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled Paystack event: %s", event_type)
            return {'event': event_type, 'handled': False}

        try:
            outcome = handler(data)
        except Exception:
            logger.exception("Error processing Paystack %s for %s", event_type, data.get('reference'))
            outcome = 'error'
        return {'event': event_type, 'handled': True, 'outcome': outcome}

    def _on_charge_success(self, data):
        reference = data.get('reference')
        transaction = self.db.transactions.find_one({'reference': reference})
        if not transaction:
            logger.warning("charge.success for unknown reference %s", reference)
            return 'unknown_reference'
        if transaction['status'] == 'successful':
            logger.info("charge.success replay for %s ignored", reference)
            return 'already_processed'

        expected_kobo = naira_to_kobo(transaction['amount'])
        if data.get('amount') is not None and int(data['amount']) != expected_kobo:
            self.ledger.mark_transaction(reference, 'failed', reason='Amount mismatch',
                                         provider_data=_provider_summary(data))
            logger.warning("Amount mismatch on %s: expected %d got %s", reference, expected_kobo, data['amount'])
            return 'amount_mismatch'

        settled = self.ledger.apply_pending_credit(reference, provider_data=_provider_summary(data))
        if settled is None:
            return 'already_processed'
        logger.info("Webhook settled %s for user %s", reference, settled['userId'])
        return 'credited'

    def _on_charge_failed(self, data):
        reference = data.get('reference')
        updated = self.ledger.mark_transaction(
            reference, 'failed', reason=data.get('gateway_response') or 'Charge failed',
            provider_data=_provider_summary(data),
        )
        logger.info("charge.failed for %s (%s)", reference, 'recorded' if updated else 'ignored')
        return 'failed' if updated else 'ignored'

    def _on_transfer_success(self, data):
        reference = data.get('reference')
        updated = self.ledger.mark_transaction(reference, 'successful', provider_data=_provider_summary(data))
        logger.info("transfer.success for %s (%s)", reference, 'recorded' if updated else 'ignored')
        return 'successful' if updated else 'ignored'

    def _on_transfer_failed(self, data):
        reference = data.get('reference')
        updated = self.ledger.mark_transaction(
            reference, 'failed', reason=data.get('reason') or 'Transfer failed',
            provider_data=_provider_summary(data),
        )
        logger.info("transfer.failed for %s (%s)", reference, 'recorded' if updated else 'ignored')
        return 'failed' if updated else 'ignored'

    # ==================== CONFIG ====================

    def get_config(self, cashback_3_months=0.0, cashback_6_months=0.0):
        return {
            'paystack': {
                'publicKey': self.public_key,
                'currency': 'NGN',
                'supportedChannels': SUPPORTED_CHANNELS,
            },
            'fees': {
                'local': {'percentage': 1.5, 'cap': 2000, 'threshold': 2500, 'flatFee': 1000},
                'international': {'percentage': 3.9, 'flatFee': 10000},
            },
            'limits': {
                'minimum': MIN_AMOUNT_KOBO,
                'maximum': MAX_AMOUNT_KOBO,
                'daily': DAILY_LIMIT_KOBO,
            },
            'cashback': {
                'threeMonthsPercentage': cashback_3_months,
                'sixMonthsPercentage': cashback_6_months,
            },
        }


def _provider_summary(data):
    """The handful of Paystack fields kept on the transaction."""
    return {
        key: data.get(key)
        for key in ('id', 'status', 'amount', 'gateway_response', 'paid_at', 'channel', 'currency')
        if data.get(key) is not None
    }
