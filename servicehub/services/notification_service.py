"""In-app notifications, optionally mirrored by email"""
import logging
from datetime import datetime

from servicehub.email_service import email_service
from servicehub.lifecycle import Role
from servicehub.models import Notification, User, db
from servicehub.utils import best_effort

logger = logging.getLogger(__name__)


def notify(user_id, notification_type, title, content, metadata=None):
    """
    Queue a notification on the current session.

    The caller commits it together with the change it describes.
    """
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        content=content,
        meta=metadata or {}
    )
    db.session.add(notification)
    return notification


def notify_admins(notification_type, title, content, metadata=None):
    admins = [u for u in User.query.all() if u.has_role(Role.ADMIN)]
    return [notify(admin.id, notification_type, title, content, metadata) for admin in admins]


def send_emails(notifications):
    """Email committed notifications; failures are logged, never raised"""
    if not email_service.is_configured():
        return
    for notification in notifications:
        user = db.session.get(User, notification.user_id)
        if user:
            best_effort(f"notification email to {user.email}",
                        email_service.send_notification_email, user, notification)


def list_notifications(user_id, unread_only=False, limit=50):
    query = Notification.query.filter_by(user_id=user_id)
    if unread_only:
        query = query.filter_by(is_read=False)
    return query.order_by(Notification.created_at.desc()).limit(limit).all()


def unread_count(user_id):
    return Notification.query.filter_by(user_id=user_id, is_read=False).count()


def mark_read(user_id, notification_ids=None):
    """Mark the given notifications as read, or all of them when no ids are given; returns the count"""
    query = Notification.query.filter_by(user_id=user_id, is_read=False)
    if notification_ids is not None:
        query = query.filter(Notification.id.in_(notification_ids))
    updated = query.update({'is_read': True, 'read_at': datetime.utcnow()}, synchronize_session=False)
    db.session.commit()
    return updated
