"""
Audit trail for ServiceHub

Authentication attempts, admin decisions and money movements are stored as
AuditLog rows and written as JSON lines to logs/audit.log. Warnings and above
also go to logs/audit_critical.log. When AUDIT_WEBHOOK_URL is set each row is
pushed to that endpoint as well.
"""
import json
import logging
import logging.handlers
import os
from datetime import datetime
from typing import Optional, Dict, Any

import requests
from flask import g, has_request_context, request

from servicehub.utils import best_effort

SEVERITY_LEVELS = {
    'low': logging.INFO,
    'medium': logging.WARNING,
    'high': logging.ERROR,
    'critical': logging.CRITICAL,
}

LOG_FORMAT = '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "event": %(message)s}'
LOG_FILE_BYTES = 50 * 1024 * 1024
LOG_FILE_BACKUPS = 10


def _rotating_handler(path, level, formatter):
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=LOG_FILE_BYTES, backupCount=LOG_FILE_BACKUPS, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


class AuditLogger:
    """Writes audit events to the database and the audit log files"""

    def __init__(self, app=None, db=None):
        self.app = None
        self.db = None
        self.logger = logging.getLogger('servicehub.audit')
        self.webhook_url = None
        if app is not None:
            self.init_app(app, db)

    def init_app(self, app, db):
        self.app = app
        self.db = db
        self.webhook_url = app.config.get('AUDIT_WEBHOOK_URL')
        self._configure_handlers()
        app.extensions['audit_logger'] = self

    def _configure_handlers(self):
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        if self.logger.handlers:
            return

        if self.app.testing:
            self.logger.addHandler(logging.NullHandler())
            return

        log_dir = self.app.config['LOG_DIR']
        os.makedirs(log_dir, exist_ok=True)
        formatter = logging.Formatter(LOG_FORMAT)
        self.logger.addHandler(_rotating_handler(os.path.join(log_dir, 'audit.log'), logging.INFO, formatter))
        self.logger.addHandler(
            _rotating_handler(os.path.join(log_dir, 'audit_critical.log'), logging.WARNING, formatter)
        )
        if self.app.debug:
            console = logging.StreamHandler()
            console.setFormatter(formatter)
            self.logger.addHandler(console)

    def _actor(self) -> Dict[str, Any]:
        """Who made the current request, and from where"""
        if not has_request_context():
            return {}
        actor = {
            'ip_address': request.remote_addr,
            'user_agent': (request.headers.get('User-Agent') or '')[:500],
            'request_method': request.method,
            'request_path': request.path,
        }
        user = g.get('current_user')
        if user is not None:
            actor['user_id'] = user.id
            actor['user_email'] = user.email
        return actor

    def log_event(self, event_category: str, event_type: str, action: str, severity: str = 'medium',
                  status: str = 'success', message: str = '', resource_type: Optional[str] = None,
                  resource_id: Optional[str] = None, details: Optional[Dict] = None,
                  user_id: Optional[str] = None, user_email: Optional[str] = None):
        """
        Record one audit event.

        event_category is one of authentication, admin, financial or system.
        severity (low, medium, high, critical) picks the log level; status is
        success, failure or blocked. user_id and user_email override the
        request's user, which is needed for events such as failed logins.
        """
        from servicehub.models import AuditLog

        event = {
            'event_category': event_category,
            'event_type': event_type,
            'action': action,
            'severity': severity,
            'status': status,
            'message': message,
            'resource_type': resource_type,
            'resource_id': str(resource_id) if resource_id else None,
        }
        event.update(self._actor())
        if user_id:
            event['user_id'] = user_id
        if user_email:
            event['user_email'] = user_email

        self.logger.log(SEVERITY_LEVELS.get(severity, logging.INFO),
                        json.dumps(dict(event, details=details), default=str))

        try:
            entry = AuditLog(details=json.dumps(details, default=str) if details else None, **event)
            self.db.session.add(entry)
            self.db.session.commit()
        except Exception as e:
            # The audited action has already been committed
            self.db.session.rollback()
            self.app.logger.error(f"Audit trail write failed for {event_category}/{event_type}: {e}")
            return

        self._forward(entry)

    def _forward(self, entry):
        if self.webhook_url:
            best_effort(f"audit webhook delivery for entry {entry.id}", self._deliver, entry)

    def _deliver(self, entry):
        response = requests.post(self.webhook_url, json=entry.to_dict(), timeout=5)
        response.raise_for_status()
        entry.forwarded = True
        entry.forwarded_at = datetime.utcnow()
        self.db.session.commit()

    def log_authentication(self, event_type: str, email: str, status: str, message: str = '', **kwargs):
        self.log_event('authentication', event_type, f"Sign-in: {event_type}",
                       severity='low' if status == 'success' else 'high',
                       status=status, message=message, user_email=email, **kwargs)

    def log_admin_action(self, action: str, resource_type: str, resource_id: str, details: Dict = None, **kwargs):
        self.log_event('admin', 'admin_operation', action, severity='high', resource_type=resource_type,
                       resource_id=resource_id, details=details, **kwargs)

    def log_financial(self, event_type: str, action: str, amount: float, resource_type: str, resource_id: str,
                      details: Dict = None, **kwargs):
        """Money movement; the amount is always part of the stored details"""
        self.log_event('financial', event_type, action, severity='high', resource_type=resource_type,
                       resource_id=resource_id, details=dict(details or {}, amount=amount), **kwargs)


audit_logger = AuditLogger()
