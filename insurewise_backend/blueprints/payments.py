from flask import Blueprint, request
import logging

from insurewise_backend.utils.responses import build_pagination, success_response
from insurewise_backend.utils.validators import RequestValidator, parse_pagination

logger = logging.getLogger(__name__)

PAYMENT_CATEGORIES = ['wallet_funding', 'wallet_withdrawal']


def init_payments_blueprint(mongo, token_required, serialize_doc, payment_service, app_config):
    """Initialize the payments blueprint with the Paystack payment service"""
    payments_bp = Blueprint('payments', __name__, url_prefix='/payments')

    @payments_bp.route('/config', methods=['GET'])
    def get_payment_config():
        config = payment_service.get_config(
            cashback_3_months=app_config['CASHBACK_3_MONTHS_PERCENTAGE'],
            cashback_6_months=app_config['CASHBACK_6_MONTHS_PERCENTAGE'],
        )
        return success_response(config, 'Payment configuration retrieved successfully')

    @payments_bp.route('/history', methods=['GET'])
    @token_required
    def get_payment_history(current_user):
        page, limit, skip = parse_pagination(request.args, default_limit=20)
        query = {'userId': current_user['_id'], 'category': {'$in': PAYMENT_CATEGORIES}}

        total = mongo.db.transactions.count_documents(query)
        payments = mongo.db.transactions.find(query).sort('createdAt', -1).skip(skip).limit(limit)

        return success_response(
            {'payments': [serialize_doc(payment) for payment in payments]},
            'Payment history retrieved successfully',
            pagination=build_pagination(page, limit, total),
        )

    @payments_bp.route('/initialize', methods=['POST'])
    @token_required
    def initialize_payment(current_user):
        data = request.get_json(silent=True) or {}
        validator = RequestValidator(data)
        amount = validator.number('amount', 'Amount (kobo)', integer=True)
        email = validator.email(required=False)
        validator.validate()

        metadata = data.get('metadata') if isinstance(data.get('metadata'), dict) else None
        payment = payment_service.initialize(current_user, amount, email=email, metadata=metadata)
        return success_response(serialize_doc(payment), 'Payment initialized successfully')

    @payments_bp.route('/verify/<reference>', methods=['GET'])
    @token_required
    def verify_payment(current_user, reference):
        result = payment_service.verify(current_user, reference)
        wallet = result['wallet']
        return success_response({
            'transaction': serialize_doc(result['transaction']),
            'wallet': {'balance': wallet['balance'], 'currency': wallet['currency']},
            'paystack': result['paystack'],
        }, 'Payment verified successfully')

    @payments_bp.route('/webhook/paystack', methods=['POST'])
    def paystack_webhook():
        # Signature covers the exact bytes Paystack sent
        payload = request.get_data()
        signature = request.headers.get('x-paystack-signature')
        result = payment_service.handle_webhook(payload, signature)
        return success_response(result, 'Webhook received')

    return payments_bp
