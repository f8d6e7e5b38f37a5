from flask import Blueprint, request
from datetime import datetime
import logging

from bson import ObjectId

from insurewise_backend.errors import ValidationError
from insurewise_backend.models import INDIVIDUAL_CONTRIBUTION_TYPES
from insurewise_backend.utils.responses import build_pagination, success_response
from insurewise_backend.utils.validators import RequestValidator, parse_pagination

logger = logging.getLogger(__name__)


def init_contributions_blueprint(mongo, token_required, serialize_doc, ledger):
    """Individual (non-group) savings contributions paid from the wallet"""
    contributions_bp = Blueprint('contributions', __name__, url_prefix='/contributions')

    @contributions_bp.route('', methods=['POST'])
    @contributions_bp.route('/', methods=['POST'])
    @token_required
    def submit_contribution(current_user):
        data = request.get_json(silent=True) or {}
        validator = RequestValidator(data)
        amount = validator.number('amount', 'Amount', greater_than=0)
        contribution_type = validator.choice('contributionType', INDIVIDUAL_CONTRIBUTION_TYPES,
                                             'Contribution type')
        validator.validate()

        wallet = ledger.get_wallet(current_user['_id'])
        transaction = ledger.debit(
            wallet,
            amount,
            f"Individual {contribution_type} contribution",
            category='individual_contribution',
            metadata={'contributionType': contribution_type},
        )
        if transaction is None:
            raise ValidationError('Insufficient wallet balance')

        now = datetime.utcnow()
        contribution = {
            '_id': ObjectId(),
            'userId': current_user['_id'],
            'amount': float(amount),
            'currency': wallet.get('currency', 'NGN'),
            'contributionType': contribution_type,
            'reference': transaction['reference'],
            'transactionId': transaction['_id'],
            'status': 'paid',
            'source': 'individual',
            'contributionDate': now,
            'metadata': data.get('metadata') if isinstance(data.get('metadata'), dict) else None,
            'createdAt': now,
            'updatedAt': now,
        }
        mongo.db.individual_contributions.insert_one(contribution)
        logger.info("User %s made a %s contribution of %.2f", current_user['_id'], contribution_type, amount)

        return success_response({
            'contribution': serialize_doc(contribution),
            'walletBalance': ledger.get_wallet(current_user['_id'])['balance'],
        }, 'Contribution recorded successfully', 201)

    @contributions_bp.route('/history', methods=['GET'])
    @token_required
    def get_contribution_history(current_user):
        page, limit, skip = parse_pagination(request.args, default_limit=20)
        query = {'userId': current_user['_id']}
        contribution_type = request.args.get('type')
        if contribution_type:
            if contribution_type not in INDIVIDUAL_CONTRIBUTION_TYPES:
                raise ValidationError(
                    f"Type must be one of: {', '.join(INDIVIDUAL_CONTRIBUTION_TYPES)}")
            query['contributionType'] = contribution_type

        total = mongo.db.individual_contributions.count_documents(query)
        contributions = mongo.db.individual_contributions.find(query) \
            .sort('contributionDate', -1).skip(skip).limit(limit)

        return success_response(
            {'contributions': [serialize_doc(c) for c in contributions]},
            'Contribution history retrieved successfully',
            pagination=build_pagination(page, limit, total),
        )

    return contributions_bp
