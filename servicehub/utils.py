"""Request parsing, pagination and transaction helpers shared by services"""
import logging
import math
import uuid
from collections import namedtuple
from contextlib import contextmanager
from datetime import datetime

from flask import request

from servicehub.errors import ValidationError
from servicehub.models import db

logger = logging.getLogger(__name__)

BestEffortResult = namedtuple('BestEffortResult', ['ok', 'value', 'error'])


@contextmanager
def atomic():
    """Commit everything done inside the block, or roll it all back"""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def best_effort(description, func, *args, **kwargs):
    """
    Run a side effect whose failure must not fail the request.

    Failures are rolled back and logged at warning level; the caller gets a
    BestEffortResult telling it what happened.
    """
    try:
        return BestEffortResult(True, func(*args, **kwargs), None)
    except Exception as e:
        db.session.rollback()
        logger.warning(f"Best-effort step failed ({description}): {str(e)}")
        return BestEffortResult(False, None, str(e))


def is_uuid(value):
    try:
        uuid.UUID(str(value))
        return True
    except (TypeError, ValueError, AttributeError):
        return False


def require_uuid(value, field='id'):
    if not value or not is_uuid(value):
        raise ValidationError(f"Invalid {field}")
    return str(value)


def get_json():
    """Request body as a dict (empty for missing or non-object bodies)"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_date(value, field='date'):
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO 8601 date")


def parse_amount(value, field, required=True, positive=True):
    if value in (None, ''):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    try:
        amount = round(float(value), 2)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if positive and amount <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    return amount


def parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).lower() in ('1', 'true', 'yes', 'on')


def parse_text_list(value):
    """Accept a list, or newline / comma separated text"""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    text = str(value)
    separator = '\n' if '\n' in text else ','
    return [part.strip() for part in text.split(separator) if part.strip()]


def filter_undefined(data, allowed):
    """Keep only the allowed keys that were actually sent"""
    return {key: data[key] for key in allowed if key in data}


def get_pagination(default_limit=10, max_limit=100):
    page = request.args.get('page', 1, type=int) or 1
    limit = request.args.get('limit', default_limit, type=int) or default_limit
    page = max(page, 1)
    limit = min(max(limit, 1), max_limit)
    return page, limit


def pagination_meta(page, limit, total):
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'total_pages': math.ceil(total / limit) if limit else 0
    }


def paginate_query(query, page, limit):
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, pagination_meta(page, limit, total)


def paginate_list(items, page, limit):
    start = (page - 1) * limit
    return items[start:start + limit], pagination_meta(page, limit, len(items))
