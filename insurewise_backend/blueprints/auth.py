from flask import Blueprint, request
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
import logging

import jwt
from bson import ObjectId

from insurewise_backend.errors import AuthenticationError, ConflictError
from insurewise_backend.utils.responses import success_response
from insurewise_backend.utils.validators import RequestValidator

logger = logging.getLogger(__name__)

PUBLIC_USER_FIELDS = (
    'email', 'firstName', 'lastName', 'phoneNumber', 'dateOfBirth', 'address', 'profilePicture',
    'role', 'isActive', 'isEmailVerified', 'isPhoneVerified', 'lastLogin', 'createdAt', 'updatedAt',
)


def public_user(user, serialize_doc):
    """User document without the password hash."""
    data = {'_id': user['_id']}
    data.update({field: user.get(field) for field in PUBLIC_USER_FIELDS if field in user})
    return serialize_doc(data)


def generate_tokens(user, config):
    now = datetime.utcnow()
    payload = {
        'user_id': str(user['_id']),
        'email': user['email'],
        'role': user.get('role', 'user'),
    }
    access_token = jwt.encode(
        dict(payload, type='access', iat=now, exp=now + config['JWT_EXPIRATION_DELTA']),
        config['JWT_SECRET'],
        algorithm='HS256',
    )
    refresh_token = jwt.encode(
        dict(payload, type='refresh', iat=now, exp=now + config['JWT_REFRESH_EXPIRATION_DELTA']),
        config['JWT_REFRESH_SECRET'],
        algorithm='HS256',
    )
    return {'accessToken': access_token, 'refreshToken': refresh_token}


def init_auth_blueprint(mongo, app_config, ledger, token_required, serialize_doc):
    """Initialize the auth blueprint with database, config and wallet ledger"""
    auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

    @auth_bp.route('/register', methods=['POST'])
    def register():
        validator = RequestValidator(request.get_json(silent=True))
        email = validator.email()
        password = validator.password()
        first_name = validator.string('firstName', 'First name', min_length=2, max_length=50)
        last_name = validator.string('lastName', 'Last name', min_length=2, max_length=50)
        phone_number = validator.phone()
        date_of_birth = validator.date('dateOfBirth', 'Date of birth', min_age_years=18)
        address = validator.string('address', 'Address', max_length=200, required=False)
        validator.validate()

        existing_user = mongo.db.users.find_one({
            '$or': [{'email': email}, {'phoneNumber': phone_number}]
        })
        if existing_user:
            raise ConflictError('User with this email or phone number already exists')

        now = datetime.utcnow()
        user = {
            '_id': ObjectId(),
            'email': email,
            'password': generate_password_hash(password),
            'firstName': first_name,
            'lastName': last_name,
            'phoneNumber': phone_number,
            'dateOfBirth': date_of_birth,
            'address': address,
            'profilePicture': None,
            'role': 'user',
            'isActive': True,
            'isEmailVerified': False,
            'isPhoneVerified': False,
            'lastLogin': None,
            'createdAt': now,
            'updatedAt': now,
        }
        mongo.db.users.insert_one(user)

        wallet = ledger.create_wallet(user['_id'], initial_balance=app_config['DEFAULT_WALLET_BALANCE'])

        logger.info("User registered: %s (%s)", user['_id'], email)

        return success_response({
            'user': public_user(user, serialize_doc),
            'wallet': {
                'id': str(wallet['_id']),
                'balance': wallet['balance'],
                'currency': wallet['currency'],
            },
            'tokens': generate_tokens(user, app_config),
        }, 'User registered successfully', 201)

    @auth_bp.route('/login', methods=['POST'])
    def login():
        validator = RequestValidator(request.get_json(silent=True))
        email = validator.email()
        password = validator.string('password', 'Password')
        validator.validate()

        user = mongo.db.users.find_one({'email': email})
        if not user or not check_password_hash(user['password'], password):
            logger.info("Failed login for %s from %s", email, request.remote_addr)
            raise AuthenticationError('Invalid email or password')

        if not user.get('isActive', True):
            raise AuthenticationError('Account is deactivated. Please contact support.')

        now = datetime.utcnow()
        mongo.db.users.update_one({'_id': user['_id']}, {'$set': {'lastLogin': now}})
        user['lastLogin'] = now

        logger.info("User logged in: %s", user['_id'])

        return success_response({
            'user': public_user(user, serialize_doc),
            'tokens': generate_tokens(user, app_config),
        }, 'Login successful')

    @auth_bp.route('/refresh-token', methods=['POST'])
    def refresh_token():
        validator = RequestValidator(request.get_json(silent=True))
        token = validator.string('refreshToken', 'Refresh token')
        validator.validate()

        try:
            data = jwt.decode(token, app_config['JWT_REFRESH_SECRET'], algorithms=['HS256'])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError('Refresh token has expired')
        except jwt.InvalidTokenError:
            raise AuthenticationError('Invalid refresh token')

        if data.get('type') != 'refresh' or not ObjectId.is_valid(data.get('user_id', '')):
            raise AuthenticationError('Invalid refresh token')

        user = mongo.db.users.find_one({'_id': ObjectId(data['user_id'])})
        if not user or not user.get('isActive', True):
            raise AuthenticationError('Invalid refresh token')

        return success_response({'tokens': generate_tokens(user, app_config)},
                                'Token refreshed successfully')

    @auth_bp.route('/logout', methods=['POST'])
    @token_required
    def logout(current_user):
        # Tokens are stateless; the client discards them
        logger.info("User logged out: %s", current_user['_id'])
        return success_response(message='Logout successful')

    @auth_bp.route('/me', methods=['GET'])
    @token_required
    def get_me(current_user):
        wallet = mongo.db.wallets.find_one({'userId': current_user['_id']})
        data = {'user': public_user(current_user, serialize_doc)}
        if wallet:
            data['wallet'] = {
                'id': str(wallet['_id']),
                'balance': wallet['balance'],
                'currency': wallet['currency'],
                'isActive': wallet['isActive'],
            }
        return success_response(data, 'User profile retrieved successfully')

    @auth_bp.route('/change-password', methods=['PUT'])
    @token_required
    def change_password(current_user):
        validator = RequestValidator(request.get_json(silent=True))
        current_password = validator.string('currentPassword', 'Current password')
        new_password = validator.password('newPassword', 'New password')
        validator.validate()

        if not check_password_hash(current_user['password'], current_password):
            raise AuthenticationError('Current password is incorrect')

        now = datetime.utcnow()
        mongo.db.users.update_one(
            {'_id': current_user['_id']},
            {'$set': {
                'password': generate_password_hash(new_password),
                'passwordChangedAt': now,
                'updatedAt': now,
            }}
        )
        logger.info("Password changed for user %s", current_user['_id'])
        return success_response(message='Password changed successfully')

    return auth_bp
