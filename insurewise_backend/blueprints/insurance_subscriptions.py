from flask import Blueprint, request
from datetime import datetime
import logging

from bson import ObjectId

from insurewise_backend.errors import NotFoundError, ValidationError
from insurewise_backend.models import SUBSCRIPTION_FREQUENCIES
from insurewise_backend.services.group_savings import add_months
from insurewise_backend.utils.responses import success_response
from insurewise_backend.utils.validators import RequestValidator, parse_object_id

logger = logging.getLogger(__name__)

FREQUENCY_MONTHS = {'monthly': 1, 'quarterly': 3, 'yearly': 12}


def init_insurance_subscriptions_blueprint(mongo, token_required, serialize_doc, ledger):
    """Initialize the insurance subscriptions blueprint; premiums are paid from the wallet"""
    insurance_subscriptions_bp = Blueprint('insurance_subscriptions', __name__,
                                           url_prefix='/insurance-subscriptions')

    @insurance_subscriptions_bp.route('/subscribe/<plan_id>', methods=['POST'])
    @token_required
    def subscribe(current_user, plan_id):
        plan_id = parse_object_id(plan_id, 'planId')
        validator = RequestValidator(request.get_json(silent=True))
        frequency = validator.choice('frequency', SUBSCRIPTION_FREQUENCIES, 'Frequency')
        payment_method = validator.string('paymentMethod', 'Payment method')
        validator.validate()

        plan = mongo.db.insurance_plans.find_one({'_id': plan_id, 'isActive': True})
        if not plan:
            raise NotFoundError('Insurance plan not found')
        if payment_method != 'wallet':
            raise ValidationError('Only wallet payments are supported for subscriptions')

        premium_amount = float(plan['premium'][frequency])
        wallet = ledger.get_wallet(current_user['_id'])
        if not ledger.can_debit(wallet, premium_amount):
            raise ValidationError('Insufficient wallet balance')

        transaction = ledger.debit(
            wallet,
            premium_amount,
            f"{plan['name']} premium ({frequency})",
            category='insurance_premium',
            metadata={'planId': str(plan['_id']), 'frequency': frequency},
        )
        if transaction is None:
            raise ValidationError('Insufficient wallet balance')

        now = datetime.utcnow()
        subscription = {
            '_id': ObjectId(),
            'userId': current_user['_id'],
            'planId': plan['_id'],
            'frequency': frequency,
            'premiumAmount': premium_amount,
            'startDate': now,
            'endDate': add_months(now, FREQUENCY_MONTHS[frequency]),
            'isActive': True,
            'isClaimed': False,
            'transactionId': transaction['_id'],
            'createdAt': now,
            'updatedAt': now,
        }
        mongo.db.insurance_subscriptions.insert_one(subscription)
        logger.info("User %s subscribed to plan %s (%s, %.2f)", current_user['_id'], plan['_id'],
                    frequency, premium_amount)

        data = serialize_doc(subscription)
        data['plan'] = serialize_doc(plan)
        return success_response({
            'subscription': data,
            'walletBalance': ledger.get_wallet(current_user['_id'])['balance'],
        }, 'Subscription successful', 201)

    @insurance_subscriptions_bp.route('/my-subscriptions', methods=['GET'])
    @token_required
    def get_my_subscriptions(current_user):
        subscriptions = list(mongo.db.insurance_subscriptions.find(
            {'userId': current_user['_id'], 'isActive': True}
        ).sort('createdAt', -1))
        plans = {
            plan['_id']: plan
            for plan in mongo.db.insurance_plans.find(
                {'_id': {'$in': [s['planId'] for s in subscriptions]}}
            )
        }

        results = []
        for subscription in subscriptions:
            data = serialize_doc(subscription)
            plan = plans.get(subscription['planId'])
            data['plan'] = serialize_doc(plan) if plan else None
            results.append(data)

        return success_response({'subscriptions': results}, 'Subscriptions retrieved successfully')

    @insurance_subscriptions_bp.route('/cancel/<subscription_id>', methods=['PATCH'])
    @token_required
    def cancel_subscription(current_user, subscription_id):
        subscription_id = parse_object_id(subscription_id, 'subscriptionId')
        result = mongo.db.insurance_subscriptions.update_one(
            {'_id': subscription_id, 'userId': current_user['_id'], 'isActive': True},
            {'$set': {'isActive': False, 'cancelledAt': datetime.utcnow(), 'updatedAt': datetime.utcnow()}}
        )
        if result.matched_count == 0:
            raise NotFoundError('Subscription not found')

        logger.info("User %s cancelled subscription %s", current_user['_id'], subscription_id)
        return success_response(message='Subscription cancelled successfully')

    return insurance_subscriptions_bp
