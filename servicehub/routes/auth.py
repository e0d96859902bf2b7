from flask import Blueprint, request

from servicehub.auth import current_user, login_required, rate_limit, reset_rate_limit
from servicehub.errors import ValidationError, created, ok
from servicehub.services import auth_service
from servicehub.utils import get_json

auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/register/company', methods=['POST'])
def register_company():
    result = auth_service.register_company(get_json())
    return created(result, 'Company registered successfully')


@auth_bp.route('/register/provider', methods=['POST'])
def register_provider():
    result = auth_service.register_provider(get_json())
    return created(result, 'Provider registered successfully')


@auth_bp.route('/login', methods=['POST'])
@rate_limit
def login():
    data = get_json()
    result = auth_service.login(data.get('email'), data.get('password'))

    # Reset rate limit on successful login
    reset_rate_limit()
    return ok(result, 'Login successful')


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    user = current_user()
    data = user.to_dict()
    data['has_customer_profile'] = user.customer_profile is not None
    data['has_provider_profile'] = user.provider_profile is not None
    return ok(data)


@auth_bp.route('/check-email', methods=['GET'])
def check_email():
    email = request.args.get('email')
    if not email:
        raise ValidationError('Email is required')
    return ok({'exists': auth_service.email_exists(email)})


@auth_bp.route('/become-provider', methods=['POST'])
@login_required
def become_provider():
    result = auth_service.become_provider(current_user(), get_json())
    return ok(result, 'Provider role added')


@auth_bp.route('/become-customer', methods=['POST'])
@login_required
def become_customer():
    result = auth_service.become_customer(current_user(), get_json())
    return ok(result, 'Customer role added')
