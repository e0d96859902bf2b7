"""SendGrid delivery for notification emails"""
from html import escape

from flask import current_app
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import From, Mail, To

# Notification types that link to a page of the web app
NOTIFICATION_PAGES = {
    'dispute': 'disputes',
    'payment': 'billing',
    'milestone': 'projects',
    'proposal': 'proposals',
    'message': 'messages',
}


class EmailService:

    def __init__(self):
        self.api_key = None
        self.from_email = None
        self.from_name = None
        self.app_url = None

    def init_app(self, app):
        self.api_key = app.config.get('SENDGRID_API_KEY')
        self.from_email = app.config.get('SENDGRID_FROM_EMAIL')
        self.from_name = app.config.get('SENDGRID_FROM_NAME')
        self.app_url = (app.config.get('APP_URL') or '').rstrip('/')
        app.extensions['email_service'] = self

    def is_configured(self):
        return bool(self.api_key and self.from_email)

    def send_email(self, to_email, to_name, subject, html_content, text_content=None):
        """
        Send one email through SendGrid

        Returns:
            tuple: (sent: bool, detail: str)
        """
        if not self.is_configured():
            return False, "Email delivery is off: SENDGRID_API_KEY and SENDGRID_FROM_EMAIL are required"

        message = Mail(
            from_email=From(self.from_email, self.from_name),
            to_emails=To(email=to_email, name=to_name),
            subject=subject,
            plain_text_content=text_content,
            html_content=html_content
        )
        response = SendGridAPIClient(self.api_key).send(message)
        if response.status_code >= 300:
            current_app.logger.warning(f"SendGrid rejected mail to {to_email}: HTTP {response.status_code}")
            return False, f"SendGrid returned status {response.status_code}"
        return True, f"Email sent to {to_email}"

    def send_notification_email(self, user, notification):
        """Mirror an in-app notification to the user's inbox"""
        link = f"{self.app_url}/{NOTIFICATION_PAGES.get(notification.type, 'notifications')}"
        body = notification.content or ''
        text_content = f"Hi {user.name},\n\n{notification.title}\n\n{body}\n\nOpen ServiceHub: {link}"
        html_content = (
            f"<p>Hi {escape(user.name)},</p>"
            f"<p><strong>{escape(notification.title)}</strong></p>"
            f"<p>{escape(body)}</p>"
            f"<p><a href=\"{link}\">Open ServiceHub</a></p>"
        )
        return self.send_email(user.email, user.name, f"[ServiceHub] {notification.title}",
                               html_content, text_content)


email_service = EmailService()
