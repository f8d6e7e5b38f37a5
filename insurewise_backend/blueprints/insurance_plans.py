from flask import Blueprint, request

from insurewise_backend.errors import NotFoundError, ValidationError
from insurewise_backend.models import PLAN_TIERS
from insurewise_backend.utils.responses import success_response
from insurewise_backend.utils.validators import parse_object_id


def init_insurance_plans_blueprint(mongo, serialize_doc):
    """Public catalogue of insurance plans"""
    insurance_plans_bp = Blueprint('insurance_plans', __name__, url_prefix='/insurance-plans')

    @insurance_plans_bp.route('', methods=['GET'])
    @insurance_plans_bp.route('/', methods=['GET'])
    def get_plans():
        query = {'isActive': True}
        tier = request.args.get('tier')
        if tier:
            if tier not in PLAN_TIERS:
                raise ValidationError(f"Tier must be one of: {', '.join(PLAN_TIERS)}")
            query['tier'] = tier

        plans = mongo.db.insurance_plans.find(query).sort('premium.monthly', 1)
        return success_response({'plans': [serialize_doc(plan) for plan in plans]},
                                'Insurance plans retrieved successfully')

    @insurance_plans_bp.route('/<plan_id>', methods=['GET'])
    def get_plan(plan_id):
        plan = mongo.db.insurance_plans.find_one({'_id': parse_object_id(plan_id, 'planId')})
        if not plan:
            raise NotFoundError('Insurance plan not found')
        return success_response({'plan': serialize_doc(plan)}, 'Insurance plan retrieved successfully')

    return insurance_plans_bp
