from flask import Blueprint, request

from servicehub.auth import current_user, login_required
from servicehub.errors import ValidationError, created, ok
from servicehub.services import message_service
from servicehub.utils import get_json, get_pagination

messages_bp = Blueprint('messages', __name__)


@messages_bp.route('', methods=['GET'])
@login_required
def list_messages():
    page, limit = get_pagination(default_limit=50)
    items, pagination = message_service.list_messages(
        current_user().id, page, limit,
        other_user_id=request.args.get('other_user_id'),
        project_id=request.args.get('project_id')
    )
    return ok({'items': items, 'pagination': pagination})


@messages_bp.route('/conversations', methods=['GET'])
@login_required
def conversations():
    return ok(message_service.list_conversations(current_user().id))


@messages_bp.route('', methods=['POST'])
@login_required
def send_message():
    message = message_service.send_message(current_user().id, get_json())
    return created(message.to_dict(), 'Message sent')


@messages_bp.route('/<message_id>/read', methods=['PATCH', 'POST'])
@login_required
def mark_read(message_id):
    message = message_service.mark_as_read(current_user().id, message_id)
    return ok(message.to_dict(), 'Message marked as read')


@messages_bp.route('/<message_id>', methods=['DELETE'])
@login_required
def delete_message(message_id):
    message_service.delete_message(current_user().id, message_id)
    return ok(None, 'Message deleted')


@messages_bp.route('/upload', methods=['POST'])
@login_required
def upload_attachment():
    if 'file' not in request.files:
        raise ValidationError('No file uploaded')
    stored = message_service.upload_attachment(current_user().id, request.files['file'])
    return created(stored, 'File uploaded')
