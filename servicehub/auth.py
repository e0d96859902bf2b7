"""
Authentication helpers

Bearer JWTs identify the caller; the decorators below load the user into
``flask.g.current_user`` and enforce roles.
"""
import re
from datetime import datetime, timedelta
from functools import wraps

import jwt as pyjwt
from email_validator import validate_email, EmailNotValidError
from flask import current_app, g, request
from werkzeug.security import generate_password_hash, check_password_hash

from servicehub.errors import ForbiddenError, RateLimitError, UnauthorizedError, ValidationError
from servicehub.lifecycle import KycStatus, Role
from servicehub.models import User, db

# Rate limiting storage (in-memory, per process)
login_attempts = {}


def hash_password(password):
    return generate_password_hash(password)


def verify_password(password, password_hash):
    return check_password_hash(password_hash, password)


def validate_password_strength(password):
    """Validate password meets security requirements"""
    if not password or len(password) < 8:
        return False, "Password must be at least 8 characters long"
    if not re.search(r'[A-Z]', password):
        return False, "Password must contain at least one uppercase letter"
    if not re.search(r'[a-z]', password):
        return False, "Password must contain at least one lowercase letter"
    if not re.search(r'\d', password):
        return False, "Password must contain at least one number"
    if not re.search(r'[!@#$%^&*(),.?":{}|<>_\-]', password):
        return False, "Password must contain at least one special character"
    return True, "Password is valid"


def normalize_email(email):
    """Validate an address and return its normalized form"""
    try:
        return validate_email(email or '', check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email address: {str(e)}")


def create_token(user):
    now = datetime.utcnow()
    payload = {
        'sub': user.id,
        'email': user.email,
        'roles': list(user.roles or []),
        'iat': now,
        'exp': now + current_app.config['JWT_EXPIRY']
    }
    return pyjwt.encode(payload, current_app.config['JWT_SECRET'],
                        algorithm=current_app.config['JWT_ALGORITHM'])


def decode_token(token):
    try:
        return pyjwt.decode(token, current_app.config['JWT_SECRET'],
                            algorithms=[current_app.config['JWT_ALGORITHM']])
    except pyjwt.ExpiredSignatureError:
        raise UnauthorizedError('Token expired')
    except pyjwt.InvalidTokenError:
        raise UnauthorizedError('Invalid token')


def _load_current_user():
    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        raise UnauthorizedError('Unauthorized - Please login')

    payload = decode_token(header[7:].strip())
    user = db.session.get(User, payload.get('sub'))
    if not user:
        raise UnauthorizedError('User no longer exists')
    if user.kyc_status == KycStatus.SUSPENDED:
        raise ForbiddenError('Account suspended')
    g.current_user = user
    return user


def current_user():
    return g.get('current_user')


def login_required(f):
    """Decorator to require a valid bearer token"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        _load_current_user()
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    """Decorator to require at least one of the given roles"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = _load_current_user()
            if not any(user.has_role(role) for role in roles):
                raise ForbiddenError(f"Forbidden - Requires role: {', '.join(roles)}")
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def admin_required(f):
    """Decorator to require admin authentication"""
    return roles_required(Role.ADMIN)(f)


def _client_identifier():
    # Behind a proxy, ProxyFix (PROXY_FIX_X_FOR) rewrites remote_addr from trusted hops only
    return request.remote_addr or 'unknown'


def rate_limit(f):
    """Rate limit decorator to prevent brute force attacks on login"""
    @wraps(f)
    def wrapped(*args, **kwargs):
        config = current_app.config
        identifier = _client_identifier()
        current_time = datetime.utcnow()

        if identifier not in login_attempts:
            login_attempts[identifier] = {'count': 0, 'first_attempt': current_time, 'locked_until': None}

        attempt_data = login_attempts[identifier]

        if attempt_data['locked_until'] and current_time < attempt_data['locked_until']:
            remaining = int((attempt_data['locked_until'] - current_time).total_seconds() / 60) + 1
            raise RateLimitError(f"Too many failed attempts. Locked for {remaining} more minutes")

        # Reset if window has passed
        if (current_time - attempt_data['first_attempt']).total_seconds() > config['LOGIN_WINDOW_MINUTES'] * 60:
            attempt_data.update(count=0, first_attempt=current_time, locked_until=None)

        if attempt_data['count'] >= config['LOGIN_MAX_ATTEMPTS']:
            attempt_data['locked_until'] = current_time + timedelta(minutes=config['LOGIN_LOCKOUT_MINUTES'])
            raise RateLimitError(f"Too many failed attempts. Locked for {config['LOGIN_LOCKOUT_MINUTES']} minutes")

        attempt_data['count'] += 1
        return f(*args, **kwargs)
    return wrapped


def reset_rate_limit():
    """Reset rate limit after a successful login"""
    login_attempts.pop(_client_identifier(), None)
