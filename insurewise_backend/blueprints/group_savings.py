from flask import Blueprint, request
import logging

from bson import ObjectId

from insurewise_backend.errors import PermissionDeniedError, ValidationError
from insurewise_backend.models import GROUP_FREQUENCIES, GROUP_STATUSES
from insurewise_backend.services.group_savings import (
    active_members,
    can_member_join,
    find_member,
    is_ready_for_payout,
    member_stats,
    overdue_contributions,
)
from insurewise_backend.utils.responses import build_pagination, success_response
from insurewise_backend.utils.validators import RequestValidator, parse_object_id, parse_pagination

logger = logging.getLogger(__name__)

MIN_CONTRIBUTION_AMOUNT = 1000


def init_group_savings_blueprint(mongo, token_required, serialize_doc, group_engine):
    """Initialize the group savings blueprint with the rotating fund engine"""
    group_savings_bp = Blueprint('group_savings', __name__, url_prefix='/group-savings')

    def group_summary(group, user_id):
        data = serialize_doc({k: v for k, v in group.items() if k not in ('contributions', 'revision')})
        data['memberCount'] = len(active_members(group))
        data['myStats'] = serialize_doc(member_stats(group, user_id))
        return data

    def load_member_group(group_id, user_id):
        group = group_engine.get_group(parse_object_id(group_id, 'groupId'))
        if find_member(group, user_id) is None:
            raise PermissionDeniedError('Access denied. You are not a member of this group.')
        return group

    @group_savings_bp.route('/available', methods=['GET'])
    @token_required
    def get_available_groups(current_user):
        page, limit, skip = parse_pagination(request.args)
        candidates = mongo.db.group_savings.find({'status': 'draft'}).sort('createdAt', -1)
        joinable = [group for group in candidates if can_member_join(group, current_user['_id'])]

        groups = []
        for group in joinable[skip:skip + limit]:
            data = serialize_doc({k: v for k, v in group.items()
                                  if k not in ('contributions', 'members', 'revision')})
            data['memberCount'] = len(active_members(group))
            data['spotsLeft'] = group['maxMembers'] - data['memberCount']
            groups.append(data)

        return success_response(
            {'groups': groups},
            'Available groups retrieved successfully',
            pagination=build_pagination(page, limit, len(joinable)),
        )

    @group_savings_bp.route('/statistics', methods=['GET'])
    @token_required
    def get_statistics(current_user):
        return success_response({'statistics': group_engine.statistics(current_user['_id'])},
                                'Group savings statistics retrieved successfully')

    @group_savings_bp.route('', methods=['GET'])
    @group_savings_bp.route('/', methods=['GET'])
    @token_required
    def get_my_groups(current_user):
        page, limit, skip = parse_pagination(request.args)
        query = {'members.user': current_user['_id']}
        status = request.args.get('status')
        if status:
            if status not in GROUP_STATUSES:
                raise ValidationError(f"Status must be one of: {', '.join(GROUP_STATUSES)}")
            query['status'] = status

        total = mongo.db.group_savings.count_documents(query)
        groups = mongo.db.group_savings.find(query).sort('createdAt', -1).skip(skip).limit(limit)

        return success_response(
            {'groups': [group_summary(group, current_user['_id']) for group in groups]},
            'Groups retrieved successfully',
            pagination=build_pagination(page, limit, total),
        )

    @group_savings_bp.route('', methods=['POST'])
    @group_savings_bp.route('/', methods=['POST'])
    @token_required
    def create_group(current_user):
        data = request.get_json(silent=True) or {}
        validator = RequestValidator(data)
        name = validator.string('name', 'Group name', min_length=1, max_length=100)
        description = validator.string('description', 'Description', max_length=500, required=False)
        contribution_amount = validator.number('contributionAmount', 'Contribution amount',
                                               min_value=MIN_CONTRIBUTION_AMOUNT)
        frequency = validator.choice('frequency', GROUP_FREQUENCIES, 'Frequency')
        start_date = validator.date('startDate', 'Start date', required=True, not_past=True)
        max_members = validator.number('maxMembers', 'Max members', min_value=2, max_value=50, integer=True)
        validator.validate()

        rules = data.get('rules')
        if rules is not None and not isinstance(rules, dict):
            raise ValidationError('Rules must be an object')

        group = group_engine.create_group(
            current_user['_id'], name, contribution_amount, frequency, start_date, max_members,
            description=description, rules=rules,
        )
        return success_response({'group': group_summary(group, current_user['_id'])},
                                'Group savings created successfully', 201)

    @group_savings_bp.route('/<group_id>', methods=['GET'])
    @token_required
    def get_group(current_user, group_id):
        group = load_member_group(group_id, current_user['_id'])

        data = group_summary(group, current_user['_id'])
        data['contributions'] = [serialize_doc(c) for c in group.get('contributions', [])
                                 if c['cycle'] == group['currentCycle']]
        data['overdueContributions'] = [serialize_doc(c) for c in overdue_contributions(group)]
        data['isReadyForPayout'] = is_ready_for_payout(group)
        data['canJoin'] = can_member_join(group)

        return success_response({'group': data}, 'Group retrieved successfully')

    @group_savings_bp.route('/<group_id>/join', methods=['POST'])
    @token_required
    def join_group(current_user, group_id):
        group, member = group_engine.add_member(parse_object_id(group_id, 'groupId'), current_user['_id'])
        return success_response({
            'group': group_summary(group, current_user['_id']),
            'position': member['position'],
        }, 'Joined group successfully')

    @group_savings_bp.route('/<group_id>/leave', methods=['POST'])
    @token_required
    def leave_group(current_user, group_id):
        group_engine.remove_member(parse_object_id(group_id, 'groupId'), current_user['_id'])
        return success_response(message='Left group successfully')

    @group_savings_bp.route('/<group_id>/contribute', methods=['POST'])
    @token_required
    def contribute(current_user, group_id):
        result = group_engine.contribute(parse_object_id(group_id, 'groupId'), current_user['_id'])
        group = result['group']

        data = {
            'contribution': serialize_doc(result['contribution']),
            'transaction': serialize_doc(result['transaction']),
            'group': group_summary(group, current_user['_id']),
            'walletBalance': result['wallet']['balance'],
            'payout': serialize_doc(result['payout']) if result['payout'] else None,
        }
        message = 'Contribution made successfully'
        if result['payout']:
            recipient = result['payout']['recipient']
            message += ' and payout processed'
            if ObjectId(recipient) == current_user['_id']:
                message += ' to you'
        return success_response(data, message)

    @group_savings_bp.route('/<group_id>/start', methods=['POST'])
    @token_required
    def start_group(current_user, group_id):
        group = group_engine.start(parse_object_id(group_id, 'groupId'), current_user['_id'])
        return success_response({'group': group_summary(group, current_user['_id'])},
                                'Group started successfully')

    return group_savings_bp
