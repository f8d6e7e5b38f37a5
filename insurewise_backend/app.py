from flask import Flask, request, jsonify, g
from flask_pymongo import PyMongo
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from datetime import datetime
from functools import wraps
import logging
import traceback

import jwt
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError
from werkzeug.exceptions import HTTPException

# Import blueprints
from insurewise_backend.blueprints.auth import init_auth_blueprint
from insurewise_backend.blueprints.users import init_users_blueprint
from insurewise_backend.blueprints.wallet import init_wallet_blueprint
from insurewise_backend.blueprints.claims import init_claims_blueprint
from insurewise_backend.blueprints.group_savings import init_group_savings_blueprint
from insurewise_backend.blueprints.payments import init_payments_blueprint
from insurewise_backend.blueprints.insurance_plans import init_insurance_plans_blueprint
from insurewise_backend.blueprints.insurance_subscriptions import init_insurance_subscriptions_blueprint
from insurewise_backend.blueprints.contributions import init_contributions_blueprint

from insurewise_backend.config.environment import get_default_config
from insurewise_backend.errors import AppError
from insurewise_backend.models import DatabaseInitializer
from insurewise_backend.services.claims import ClaimWorkflow
from insurewise_backend.services.group_savings import GroupSavingsEngine
from insurewise_backend.services.paystack import PaymentService, PaystackClient
from insurewise_backend.services.wallet_ledger import WalletLedger
from insurewise_backend.setup_admin import ensure_admin_user
from insurewise_backend.utils.api_logging_middleware import setup_api_logging
from insurewise_backend.utils.logging_config import setup_logging
from insurewise_backend.utils.responses import error_response

logger = logging.getLogger(__name__)

APP_VERSION = '1.0.0'


def serialize_doc(doc):
    """ObjectIds to strings, `_id` to `id`, datetimes to ISO-8601 UTC."""
    if not doc:
        return doc

    if isinstance(doc, dict):
        doc = doc.copy()

    if '_id' in doc:
        doc['id'] = str(doc['_id'])
        del doc['_id']

    for key, value in list(doc.items()):
        doc[key] = _serialize_value(value)

    return doc


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat() + 'Z'
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(item) for item in value]
    return value


def create_app(config_overrides=None, mongo=None):
    """
    Build the InsureWise API.

    Args:
        config_overrides: dict applied on top of the environment config
        mongo: object exposing `.db`; a Flask-PyMongo client on MONGO_URI when omitted
    """
    app = Flask(__name__)

    # Configuration
    app.config.update(get_default_config())
    if config_overrides:
        app.config.update(config_overrides)

    setup_logging(
        level=app.config['LOG_LEVEL'],
        log_dir=app.config['LOG_DIR'],
        enable_files=not app.config.get('TESTING'),
    )

    # Initialize extensions
    origins = [origin.strip() for origin in app.config['CORS_ORIGIN'].split(',') if origin.strip()]
    CORS(app, origins=origins or ['*'], supports_credentials=True)

    if mongo is None:
        mongo = PyMongo(app, uri=app.config['MONGO_URI'])
    app.mongo = mongo

    window_seconds = max(1, app.config['RATE_LIMIT_WINDOW_MS'] // 1000)
    limiter = Limiter(
        app=app,
        key_func=get_remote_address,
        default_limits=[f"{app.config['RATE_LIMIT_MAX_REQUESTS']} per {window_seconds} seconds"],
        storage_uri="memory://",
    )
    app.limiter = limiter

    # Initialize database collections, indexes and default data
    db_initializer = DatabaseInitializer(mongo.db)
    db_results = db_initializer.initialize_collections()
    if db_results['errors']:
        logger.warning("Database initialization finished with %d error(s)", len(db_results['errors']))
    db_initializer.seed_default_plans()
    if app.config.get('ADMIN_EMAIL') and app.config.get('ADMIN_PASSWORD'):
        ensure_admin_user(mongo.db, app.config['ADMIN_EMAIL'], app.config['ADMIN_PASSWORD'])

    # Services
    ledger = WalletLedger(mongo.db)
    group_engine = GroupSavingsEngine(mongo.db, ledger)
    claim_workflow = ClaimWorkflow(
        mongo.db,
        analysis_delay_seconds=app.config['CLAIM_ANALYSIS_DELAY_SECONDS'],
        run_analysis_sync=app.config['CLAIM_ANALYSIS_SYNC'],
    )
    paystack_client = PaystackClient(
        app.config['PAYSTACK_SECRET_KEY'],
        base_url=app.config['PAYSTACK_BASE_URL'],
        timeout=app.config['PAYSTACK_TIMEOUT_SECONDS'],
        mock=app.config['PAYSTACK_MOCK'],
    )
    payment_service = PaymentService(
        mongo.db,
        ledger,
        paystack_client,
        secret_key=app.config['PAYSTACK_SECRET_KEY'],
        public_key=app.config['PAYSTACK_PUBLIC_KEY'],
    )
    app.extensions['insurewise'] = {
        'ledger': ledger,
        'group_engine': group_engine,
        'claim_workflow': claim_workflow,
        'payment_service': payment_service,
    }

    # Token required decorator
    def token_required(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            token = request.headers.get('Authorization')
            if not token:
                return error_response('Access denied. No token provided.', 401)

            if token.startswith('Bearer '):
                token = token[7:]
            try:
                data = jwt.decode(token, app.config['JWT_SECRET'], algorithms=['HS256'])
            except jwt.ExpiredSignatureError:
                return error_response('Token has expired', 401)
            except jwt.InvalidTokenError:
                return error_response('Invalid token', 401)

            if 'user_id' not in data or data.get('type', 'access') != 'access' \
                    or not ObjectId.is_valid(data['user_id']):
                return error_response('Invalid token format', 401)

            current_user = mongo.db.users.find_one({'_id': ObjectId(data['user_id'])})
            if not current_user:
                return error_response('User not found', 401)
            if not current_user.get('isActive', True):
                return error_response('Account is deactivated', 401)

            # Store user ID in g for API logging middleware
            g.current_user_id = current_user['_id']

            return f(current_user, *args, **kwargs)
        return decorated

    # Admin required decorator
    def admin_required(f):
        @wraps(f)
        def decorated(current_user, *args, **kwargs):
            if current_user.get('role') != 'admin':
                return error_response('Admin access required', 403)
            return f(current_user, *args, **kwargs)
        return decorated

    # Subject-or-admin decorator for routes carrying a user id
    def ownership_required(param='user_id'):
        def decorator(f):
            @wraps(f)
            def decorated(current_user, *args, **kwargs):
                subject = kwargs.get(param)
                if current_user.get('role') != 'admin' and str(current_user['_id']) != str(subject):
                    return error_response('Access denied. You can only access your own resources.', 403)
                return f(current_user, *args, **kwargs)
            return decorated
        return decorator

    # Initialize and register blueprints
    api_base = f"{app.config['API_PREFIX']}/{app.config['API_VERSION']}"

    blueprints = [
        init_auth_blueprint(mongo, app.config, ledger, token_required, serialize_doc),
        init_users_blueprint(mongo, token_required, admin_required, ownership_required, serialize_doc),
        init_wallet_blueprint(mongo, token_required, serialize_doc, ledger, payment_service),
        init_claims_blueprint(mongo, token_required, admin_required, serialize_doc, claim_workflow),
        init_payments_blueprint(mongo, token_required, serialize_doc, payment_service, app.config),
        init_insurance_plans_blueprint(mongo, serialize_doc),
        init_insurance_subscriptions_blueprint(mongo, token_required, serialize_doc, ledger),
        init_contributions_blueprint(mongo, token_required, serialize_doc, ledger),
    ]
    for blueprint in blueprints:
        app.register_blueprint(blueprint, url_prefix=f"{api_base}{blueprint.url_prefix}")

    group_savings_blueprint = init_group_savings_blueprint(mongo, token_required, serialize_doc, group_engine)
    app.register_blueprint(group_savings_blueprint, url_prefix=f"{api_base}/group-savings")
    app.register_blueprint(group_savings_blueprint, url_prefix=f"{api_base}/groups", name='groups')

    # Paystack retries webhooks; they must never be throttled
    limiter.exempt(app.view_functions['payments.paystack_webhook'])

    setup_api_logging(app)

    # Health check endpoint
    @app.route('/health', methods=['GET'])
    def health_check():
        return jsonify({
            'status': 'success',
            'message': 'InsureWise API is running!',
            'timestamp': datetime.utcnow().isoformat() + 'Z',
            'environment': app.config['APP_ENV'],
            'version': APP_VERSION,
        })

    # Error handlers
    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(DuplicateKeyError)
    def handle_duplicate_key(error):
        key_value = (error.details or {}).get('keyValue') or {}
        if key_value:
            field, value = next(iter(key_value.items()))
            message = f"{field[:1].upper()}{field[1:]} '{value}' already exists"
        else:
            message = 'Duplicate value'
        return error_response(message, 400)

    @app.errorhandler(InvalidId)
    def handle_invalid_id(error):
        return error_response('Invalid id', 400)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        if error.code == 404:
            return error_response(f"Can't find {request.path} on this server!", 404)
        if error.code == 429:
            return error_response('Too many requests from this IP, please try again later.', 429)
        return error_response(error.description or error.name, error.code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(
            "Unhandled error on %s %s (ip=%s user=%s)",
            request.method, request.path, request.remote_addr, getattr(g, 'current_user_id', None),
        )
        if app.config['APP_ENV'] == 'production':
            return error_response('Something went wrong!', 500)
        return error_response(str(error) or 'Internal server error', 500,
                              stack=traceback.format_exception(type(error), error, error.__traceback__))

    logger.info("InsureWise API ready under %s (%s)", api_base, app.config['APP_ENV'])
    return app
