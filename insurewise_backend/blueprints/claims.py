from flask import Blueprint, request
import logging

from insurewise_backend.errors import PermissionDeniedError, ValidationError
from insurewise_backend.models import CLAIM_STATUSES, CLAIM_TYPES, CURRENCIES
from insurewise_backend.services.claims import claim_age_in_days, format_amount
from insurewise_backend.utils.responses import build_pagination, success_response
from insurewise_backend.utils.validators import RequestValidator, parse_object_id, parse_pagination

logger = logging.getLogger(__name__)


def init_claims_blueprint(mongo, token_required, admin_required, serialize_doc, claim_workflow):
    """Initialize the claims blueprint with the claim workflow"""
    claims_bp = Blueprint('claims', __name__, url_prefix='/claims')

    def claim_response(claim):
        data = serialize_doc(claim)
        data['formattedAmount'] = format_amount(claim['amount'], claim.get('currency', 'NGN'))
        if claim.get('approvedAmount') is not None:
            data['formattedApprovedAmount'] = format_amount(claim['approvedAmount'], claim.get('currency', 'NGN'))
        data['ageInDays'] = claim_age_in_days(claim)
        return data

    @claims_bp.route('', methods=['POST'])
    @claims_bp.route('/', methods=['POST'])
    @token_required
    def submit_claim(current_user):
        validator = RequestValidator(request.get_json(silent=True))
        claim_type = validator.choice('type', CLAIM_TYPES, 'Claim type')
        title = validator.string('title', 'Title', min_length=5, max_length=100)
        description = validator.string('description', 'Description', min_length=10, max_length=1000)
        amount = validator.number('amount', 'Amount', min_value=0.01)
        currency = validator.choice('currency', CURRENCIES, 'Currency', required=False, default='NGN')
        receipt_url = validator.url('receiptUrl', 'Receipt URL')
        documents = validator.url_list('documents', 'Documents')
        validator.validate()

        claim = claim_workflow.submit(
            current_user['_id'], claim_type, title, description, amount,
            currency=currency, receipt_url=receipt_url, documents=documents,
        )
        return success_response({'claim': claim_response(claim)}, 'Claim submitted successfully', 201)

    @claims_bp.route('', methods=['GET'])
    @claims_bp.route('/', methods=['GET'])
    @token_required
    def get_my_claims(current_user):
        page, limit, skip = parse_pagination(request.args, default_limit=20)
        query = {'userId': current_user['_id']}
        status = request.args.get('status')
        if status:
            if status not in CLAIM_STATUSES:
                raise ValidationError(f"Status must be one of: {', '.join(CLAIM_STATUSES)}")
            query['status'] = status

        total = mongo.db.claims.count_documents(query)
        claims = mongo.db.claims.find(query).sort('createdAt', -1).skip(skip).limit(limit)

        return success_response(
            {'claims': [claim_response(claim) for claim in claims]},
            'Claims retrieved successfully',
            pagination=build_pagination(page, limit, total),
        )

    @claims_bp.route('/pending', methods=['GET'])
    @token_required
    @admin_required
    def get_pending_claims(current_user):
        page, limit, skip = parse_pagination(request.args, default_limit=20)
        query = {'status': 'pending'}

        total = mongo.db.claims.count_documents(query)
        # Oldest first so the queue is worked in submission order
        claims = list(mongo.db.claims.find(query).sort('createdAt', 1).skip(skip).limit(limit))

        owners = {
            user['_id']: user
            for user in mongo.db.users.find(
                {'_id': {'$in': list({claim['userId'] for claim in claims})}},
                {'firstName': 1, 'lastName': 1, 'email': 1},
            )
        }
        results = []
        for claim in claims:
            data = claim_response(claim)
            owner = owners.get(claim['userId'])
            if owner:
                data['user'] = serialize_doc(owner)
            results.append(data)

        return success_response(
            {'claims': results},
            'Pending claims retrieved successfully',
            pagination=build_pagination(page, limit, total),
        )

    @claims_bp.route('/statistics', methods=['GET'])
    @token_required
    def get_claim_statistics(current_user):
        user_id = None if current_user.get('role') == 'admin' else current_user['_id']
        return success_response({'statistics': claim_workflow.statistics(user_id)},
                                'Claim statistics retrieved successfully')

    @claims_bp.route('/<claim_id>', methods=['GET'])
    @token_required
    def get_claim(current_user, claim_id):
        claim = claim_workflow.get_claim(parse_object_id(claim_id, 'claimId'))
        if claim['userId'] != current_user['_id'] and current_user.get('role') != 'admin':
            raise PermissionDeniedError('Access denied. You can only view your own claims.')
        return success_response({'claim': claim_response(claim)}, 'Claim retrieved successfully')

    @claims_bp.route('/<claim_id>/status', methods=['PUT'])
    @token_required
    @admin_required
    def update_claim_status(current_user, claim_id):
        claim_id = parse_object_id(claim_id, 'claimId')
        validator = RequestValidator(request.get_json(silent=True))
        status = validator.string('status', 'Status')
        notes = validator.string('notes', 'Notes', max_length=500, required=False)
        approved_amount = validator.number('approvedAmount', 'Approved amount', greater_than=0, required=False)
        validator.validate()

        claim = claim_workflow.update_status(
            claim_id, current_user['_id'], status, notes=notes, approved_amount=approved_amount,
        )
        return success_response({'claim': claim_response(claim)}, f"Claim status updated to {status}")

    @claims_bp.route('/<claim_id>/documents', methods=['POST'])
    @token_required
    def add_claim_documents(current_user, claim_id):
        claim_id = parse_object_id(claim_id, 'claimId')
        validator = RequestValidator(request.get_json(silent=True))
        document_urls = validator.url_list('documentUrls', 'Document URLs', required=True, min_items=1)
        validator.validate()

        claim = claim_workflow.add_documents(claim_id, current_user['_id'], document_urls)
        return success_response({'claim': claim_response(claim)}, 'Documents added successfully')

    return claims_bp
