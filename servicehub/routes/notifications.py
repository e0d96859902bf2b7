from flask import Blueprint, request

from servicehub.auth import current_user, login_required
from servicehub.errors import ValidationError, ok
from servicehub.services import notification_service
from servicehub.utils import get_json, parse_bool

notifications_bp = Blueprint('notifications', __name__)


@notifications_bp.route('', methods=['GET'])
@login_required
def list_notifications():
    limit = min(max(request.args.get('limit', 50, type=int) or 50, 1), 200)
    notifications = notification_service.list_notifications(
        current_user().id,
        unread_only=parse_bool(request.args.get('unread_only', 'false')),
        limit=limit
    )
    return ok([n.to_dict() for n in notifications])


@notifications_bp.route('/unread-count', methods=['GET'])
@login_required
def unread_count():
    return ok({'count': notification_service.unread_count(current_user().id)})


@notifications_bp.route('/mark-read', methods=['POST', 'PATCH'])
@login_required
def mark_read():
    ids = get_json().get('ids')
    if ids is not None and not isinstance(ids, list):
        raise ValidationError('ids must be a list')
    updated = notification_service.mark_read(current_user().id, ids)
    return ok({'updated': updated}, 'Notifications marked as read')
