from flask import Blueprint, request
from datetime import datetime
import logging
import re

from insurewise_backend.blueprints.auth import public_user
from insurewise_backend.errors import ConflictError, NotFoundError, PermissionDeniedError
from insurewise_backend.models import USER_ROLES
from insurewise_backend.utils.responses import build_pagination, success_response
from insurewise_backend.utils.validators import RequestValidator, parse_object_id, parse_pagination

logger = logging.getLogger(__name__)


def init_users_blueprint(mongo, token_required, admin_required, ownership_required, serialize_doc):
    """Initialize the users blueprint with database and auth decorators"""
    users_bp = Blueprint('users', __name__, url_prefix='/users')

    @users_bp.route('/profile', methods=['GET'])
    @token_required
    def get_profile(current_user):
        return success_response({'user': public_user(current_user, serialize_doc)},
                                'Profile retrieved successfully')

    @users_bp.route('/profile', methods=['PUT'])
    @token_required
    def update_profile(current_user):
        validator = RequestValidator(request.get_json(silent=True))
        validator.string('firstName', 'First name', min_length=2, max_length=50, required=False)
        validator.string('lastName', 'Last name', min_length=2, max_length=50, required=False)
        validator.phone(required=False)
        validator.date('dateOfBirth', 'Date of birth', min_age_years=18)
        validator.string('address', 'Address', max_length=200, required=False)
        updates = validator.validate()

        phone_number = updates.get('phoneNumber')
        if phone_number and phone_number != current_user.get('phoneNumber'):
            taken = mongo.db.users.find_one({'phoneNumber': phone_number, '_id': {'$ne': current_user['_id']}})
            if taken:
                raise ConflictError('Phone number is already in use')
            updates['isPhoneVerified'] = False

        if not updates:
            return success_response({'user': public_user(current_user, serialize_doc)}, 'No changes to apply')

        updates['updatedAt'] = datetime.utcnow()
        mongo.db.users.update_one({'_id': current_user['_id']}, {'$set': updates})
        user = mongo.db.users.find_one({'_id': current_user['_id']})

        logger.info("Profile updated for user %s: %s", current_user['_id'], sorted(updates))
        return success_response({'user': public_user(user, serialize_doc)}, 'Profile updated successfully')

    @users_bp.route('/profile-picture', methods=['PUT'])
    @token_required
    def update_profile_picture(current_user):
        validator = RequestValidator(request.get_json(silent=True))
        picture_url = validator.url('profilePicture', 'Profile picture', required=True)
        validator.validate()

        mongo.db.users.update_one(
            {'_id': current_user['_id']},
            {'$set': {'profilePicture': picture_url, 'updatedAt': datetime.utcnow()}}
        )
        return success_response({'profilePicture': picture_url}, 'Profile picture updated successfully')

    @users_bp.route('/deactivate', methods=['DELETE'])
    @token_required
    def deactivate_account(current_user):
        now = datetime.utcnow()
        mongo.db.users.update_one(
            {'_id': current_user['_id']},
            {'$set': {'isActive': False, 'updatedAt': now}}
        )
        mongo.db.wallets.update_one(
            {'userId': current_user['_id']},
            {'$set': {'isActive': False, 'updatedAt': now}}
        )
        logger.info("User %s deactivated their account", current_user['_id'])
        return success_response(message='Account deactivated successfully')

    @users_bp.route('', methods=['GET'])
    @users_bp.route('/', methods=['GET'])
    @token_required
    @admin_required
    def list_users(current_user):
        page, limit, skip = parse_pagination(request.args)

        query = {}
        search = request.args.get('search', '').strip()
        if search:
            pattern = {'$regex': re.escape(search), '$options': 'i'}
            query['$or'] = [{'email': pattern}, {'firstName': pattern}, {'lastName': pattern},
                            {'phoneNumber': pattern}]
        role = request.args.get('role')
        if role in USER_ROLES:
            query['role'] = role
        is_active = request.args.get('isActive')
        if is_active in ('true', 'false'):
            query['isActive'] = is_active == 'true'

        total = mongo.db.users.count_documents(query)
        users = mongo.db.users.find(query).sort('createdAt', -1).skip(skip).limit(limit)

        return success_response(
            {'users': [public_user(user, serialize_doc) for user in users]},
            'Users retrieved successfully',
            pagination=build_pagination(page, limit, total),
        )

    @users_bp.route('/<user_id>', methods=['GET'])
    @token_required
    @ownership_required('user_id')
    def get_user(current_user, user_id):
        user = mongo.db.users.find_one({'_id': parse_object_id(user_id, 'userId')})
        if not user:
            raise NotFoundError('User not found')

        data = {'user': public_user(user, serialize_doc)}
        wallet = mongo.db.wallets.find_one({'userId': user['_id']})
        if wallet:
            data['wallet'] = {'balance': wallet['balance'], 'currency': wallet['currency'],
                              'isActive': wallet['isActive']}
        return success_response(data, 'User retrieved successfully')

    @users_bp.route('/<user_id>/role', methods=['PUT'])
    @token_required
    @admin_required
    def update_user_role(current_user, user_id):
        target_id = parse_object_id(user_id, 'userId')
        if target_id == current_user['_id']:
            raise PermissionDeniedError('You cannot change your own role')

        validator = RequestValidator(request.get_json(silent=True))
        role = validator.choice('role', USER_ROLES, 'Role')
        validator.validate()

        result = mongo.db.users.update_one(
            {'_id': target_id},
            {'$set': {'role': role, 'updatedAt': datetime.utcnow()}}
        )
        if result.matched_count == 0:
            raise NotFoundError('User not found')

        logger.info("Admin %s set role of %s to %s", current_user['_id'], user_id, role)
        user = mongo.db.users.find_one({'_id': target_id})
        return success_response({'user': public_user(user, serialize_doc)}, 'User role updated successfully')

    return users_bp
