"""Registration, login and role switching"""
import logging
from datetime import datetime

from servicehub.audit import audit_logger
from servicehub.auth import create_token, hash_password, normalize_email, validate_password_strength, verify_password
from servicehub.errors import ConflictError, ForbiddenError, UnauthorizedError, ValidationError
from servicehub.lifecycle import KycStatus, Role
from servicehub.models import CustomerProfile, ProviderProfile, User, db
from servicehub.utils import atomic, parse_text_list

logger = logging.getLogger(__name__)

COMPANY_FIELDS = ('company_name', 'company_size', 'industry', 'website', 'location', 'registration_number')


def _session_payload(user):
    return {'token': create_token(user), 'user': user.to_dict()}


def email_exists(email):
    return User.query.filter_by(email=normalize_email(email)).first() is not None


def _create_user(data, role):
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Name is required')

    email = normalize_email(data.get('email'))
    password = data.get('password') or ''
    is_valid, message = validate_password_strength(password)
    if not is_valid:
        raise ValidationError(message)

    if User.query.filter_by(email=email).first():
        raise ConflictError('Email already registered')

    user = User(
        name=name,
        email=email,
        phone=data.get('phone'),
        password_hash=hash_password(password),
        roles=[role],
        kyc_status=KycStatus.INACTIVE
    )
    db.session.add(user)
    db.session.flush()
    return user


def register_company(data):
    with atomic():
        user = _create_user(data, Role.CUSTOMER)
        profile = CustomerProfile(user_id=user.id, description=data.get('description'))
        for field in COMPANY_FIELDS:
            if data.get(field) is not None:
                setattr(profile, field, data[field])
        db.session.add(profile)

    logger.info(f"Company registered: {user.email}")
    return _session_payload(user)


def register_provider(data):
    with atomic():
        user = _create_user(data, Role.PROVIDER)
        profile = ProviderProfile(
            user_id=user.id,
            bio=data.get('bio'),
            location=data.get('location'),
            skills=parse_text_list(data.get('skills')),
            hourly_rate=data.get('hourly_rate'),
        )
        db.session.add(profile)

    logger.info(f"Provider registered: {user.email}")
    return _session_payload(user)


def login(email, password):
    if not email or not password:
        raise ValidationError('Email and password are required')

    user = User.query.filter_by(email=str(email).strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        audit_logger.log_authentication('login_failure', str(email), 'failure', 'Invalid credentials')
        raise UnauthorizedError('Invalid email or password')

    if user.kyc_status == KycStatus.SUSPENDED:
        audit_logger.log_authentication('login_blocked', user.email, 'blocked', 'Account suspended',
                                        user_id=user.id)
        raise ForbiddenError('Account suspended')

    user.last_login_at = datetime.utcnow()
    db.session.commit()
    audit_logger.log_authentication('login_success', user.email, 'success', user_id=user.id)
    return _session_payload(user)


def become_provider(user, data):
    """Give a company account the provider role"""
    if user.has_role(Role.PROVIDER):
        raise ValidationError('You are already a provider')

    with atomic():
        user.roles = list(user.roles or []) + [Role.PROVIDER]
        if not user.provider_profile:
            db.session.add(ProviderProfile(
                user_id=user.id,
                bio=data.get('bio'),
                location=data.get('location'),
                skills=parse_text_list(data.get('skills'))
            ))
    return _session_payload(user)


def become_customer(user, data):
    """Give a provider account the customer role"""
    if user.has_role(Role.CUSTOMER):
        raise ValidationError('You are already a customer')

    with atomic():
        user.roles = list(user.roles or []) + [Role.CUSTOMER]
        if not user.customer_profile:
            profile = CustomerProfile(user_id=user.id, description=data.get('description'))
            for field in COMPANY_FIELDS:
                if data.get(field) is not None:
                    setattr(profile, field, data[field])
            db.session.add(profile)
    return _session_payload(user)
