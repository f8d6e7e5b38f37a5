from flask import Blueprint, request
import logging

from insurewise_backend.errors import NotFoundError, ValidationError
from insurewise_backend.models import TRANSACTION_STATUSES, TRANSACTION_TYPES
from insurewise_backend.services.paystack import naira_to_kobo
from insurewise_backend.utils.responses import build_pagination, success_response
from insurewise_backend.utils.validators import (
    RequestValidator, parse_datetime, parse_object_id, parse_pagination,
)

logger = logging.getLogger(__name__)


def init_wallet_blueprint(mongo, token_required, serialize_doc, ledger, payment_service):
    """Initialize the wallet blueprint with the ledger and payment service"""
    wallet_bp = Blueprint('wallet', __name__, url_prefix='/wallet')

    def wallet_summary(wallet):
        return {
            'id': str(wallet['_id']),
            'balance': wallet['balance'],
            'currency': wallet['currency'],
            'isActive': wallet['isActive'],
        }

    @wallet_bp.route('/balance', methods=['GET'])
    @token_required
    def get_balance(current_user):
        wallet = ledger.get_wallet(current_user['_id'])
        data = wallet_summary(wallet)
        data['lastUpdated'] = serialize_doc({'updatedAt': wallet['updatedAt']})['updatedAt']
        return success_response({'wallet': data}, 'Wallet balance retrieved successfully')

    @wallet_bp.route('/transactions', methods=['GET'])
    @token_required
    def get_transactions(current_user):
        page, limit, skip = parse_pagination(request.args, default_limit=20)

        query = {'userId': current_user['_id']}
        tx_type = request.args.get('type')
        if tx_type:
            if tx_type not in TRANSACTION_TYPES:
                raise ValidationError(f"Type must be one of: {', '.join(TRANSACTION_TYPES)}")
            query['type'] = tx_type
        status = request.args.get('status')
        if status:
            if status not in TRANSACTION_STATUSES:
                raise ValidationError(f"Status must be one of: {', '.join(TRANSACTION_STATUSES)}")
            query['status'] = status

        total = mongo.db.transactions.count_documents(query)
        transactions = mongo.db.transactions.find(query).sort('createdAt', -1).skip(skip).limit(limit)

        return success_response(
            {'transactions': [serialize_doc(tx) for tx in transactions]},
            'Transactions retrieved successfully',
            pagination=build_pagination(page, limit, total),
        )

    @wallet_bp.route('/transactions/<transaction_id>', methods=['GET'])
    @token_required
    def get_transaction(current_user, transaction_id):
        transaction = mongo.db.transactions.find_one({
            '_id': parse_object_id(transaction_id, 'transactionId'),
            'userId': current_user['_id'],
        })
        if not transaction:
            raise NotFoundError('Transaction not found')
        return success_response({'transaction': serialize_doc(transaction)},
                                'Transaction retrieved successfully')

    @wallet_bp.route('/summary', methods=['GET'])
    @token_required
    def get_summary(current_user):
        match = {'userId': current_user['_id'], 'status': 'successful'}
        date_range = {}
        for arg, operator in (('startDate', '$gte'), ('endDate', '$lte')):
            if request.args.get(arg):
                value = parse_datetime(request.args[arg])
                if value is None:
                    raise ValidationError(f"{arg} must be a valid date")
                date_range[operator] = value
        if date_range:
            match['createdAt'] = date_range

        breakdown = {
            row['_id']: {'total': row['total'], 'count': row['count']}
            for row in mongo.db.transactions.aggregate([
                {'$match': match},
                {'$group': {'_id': '$type', 'total': {'$sum': '$amount'}, 'count': {'$sum': 1}}},
            ])
        }
        total_credit = breakdown.get('credit', {}).get('total', 0)
        total_debit = breakdown.get('debit', {}).get('total', 0)

        wallet = ledger.get_wallet(current_user['_id'])
        return success_response({
            'summary': {
                'currentBalance': wallet['balance'],
                'totalCredit': total_credit,
                'totalDebit': total_debit,
                'totalTransactions': sum(row['count'] for row in breakdown.values()),
                'netBalance': total_credit - total_debit,
                'breakdown': breakdown,
            }
        }, 'Wallet summary retrieved successfully')

    @wallet_bp.route('/fund', methods=['POST'])
    @token_required
    def fund_wallet(current_user):
        validator = RequestValidator(request.get_json(silent=True))
        amount = validator.number('amount', 'Amount', min_value=100)
        validator.validate()

        payment = payment_service.initialize(current_user, naira_to_kobo(amount),
                                             metadata={'source': 'wallet_fund'})
        return success_response(serialize_doc(payment), 'Payment initialized successfully')

    @wallet_bp.route('/transfer', methods=['POST'])
    @token_required
    def transfer(current_user):
        validator = RequestValidator(request.get_json(silent=True))
        recipient_email = validator.email('recipientEmail', 'Recipient email')
        amount = validator.number('amount', 'Amount', greater_than=0)
        description = validator.string('description', 'Description', max_length=200, required=False)
        validator.validate()

        recipient = mongo.db.users.find_one({'email': recipient_email, 'isActive': True})
        if not recipient:
            raise NotFoundError('Recipient not found')

        sender_wallet = ledger.get_wallet(current_user['_id'])
        recipient_wallet = mongo.db.wallets.find_one({'userId': recipient['_id'], 'isActive': True})
        if not recipient_wallet:
            raise NotFoundError('Recipient wallet not found')

        debit_tx, credit_tx = ledger.transfer(
            sender_wallet, recipient_wallet, amount,
            description or f"Transfer to {recipient['firstName']} {recipient['lastName']}",
        )
        logger.info("Transfer %s: %s -> %s (%.2f)", debit_tx['reference'], current_user['_id'],
                    recipient['_id'], amount)

        return success_response({
            'transaction': serialize_doc(debit_tx),
            'wallet': wallet_summary(ledger.get_wallet(current_user['_id'])),
            'recipient': {
                'email': recipient['email'],
                'name': f"{recipient['firstName']} {recipient['lastName']}",
            },
        }, 'Transfer completed successfully')

    return wallet_bp
