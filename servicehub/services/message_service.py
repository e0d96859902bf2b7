"""Direct messages between users"""
from datetime import datetime

from sqlalchemy import and_, or_

from servicehub.errors import NotFoundError, ValidationError
from servicehub.models import Message, Project, User, db
from servicehub.services.notification_service import notify
from servicehub.storage import save_upload
from servicehub.utils import atomic, paginate_query, parse_text_list, require_uuid

MESSAGE_TYPES = ('text', 'file')


def list_messages(user_id, page, limit, other_user_id=None, project_id=None):
    """A conversation (oldest first) or all of the user's messages (newest first)"""
    if other_user_id:
        other_user_id = require_uuid(other_user_id, 'other_user_id')
        query = Message.query.filter(or_(
            and_(Message.sender_id == user_id, Message.receiver_id == other_user_id),
            and_(Message.sender_id == other_user_id, Message.receiver_id == user_id)
        ))
        order = Message.created_at.asc()
    else:
        query = Message.query.filter(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
        order = Message.created_at.desc()
    if project_id:
        query = query.filter(Message.project_id == require_uuid(project_id, 'project_id'))

    messages, pagination = paginate_query(query.order_by(order), page, limit)
    return [m.to_dict() for m in messages], pagination


def list_conversations(user_id):
    """Conversation partners with the last message and unread count"""
    messages = Message.query.filter(or_(Message.sender_id == user_id, Message.receiver_id == user_id)) \
        .order_by(Message.created_at.desc()).all()

    conversations = {}
    for message in messages:
        partner_id = message.receiver_id if message.sender_id == user_id else message.sender_id
        entry = conversations.get(partner_id)
        if entry is None:
            partner = message.receiver if message.sender_id == user_id else message.sender
            entry = {
                'user': partner.to_summary() if partner else {'id': partner_id},
                'last_message': message.to_dict(),
                'unread_count': 0
            }
            conversations[partner_id] = entry
        if message.receiver_id == user_id and not message.is_read:
            entry['unread_count'] += 1
    return list(conversations.values())


def send_message(sender_id, data):
    receiver_id = require_uuid(data.get('receiver_id'), 'receiver_id')
    if receiver_id == sender_id:
        raise ValidationError('You cannot message yourself')
    receiver = db.session.get(User, receiver_id)
    if receiver is None:
        raise NotFoundError('Receiver not found')

    message_type = data.get('message_type') or 'text'
    if message_type not in MESSAGE_TYPES:
        raise ValidationError("message_type must be 'text' or 'file'")
    content = (data.get('content') or '').strip()
    attachments = parse_text_list(data.get('attachments'))
    if message_type == 'text' and not content:
        raise ValidationError('Message content is required')
    if message_type == 'file' and not attachments:
        raise ValidationError('File messages need at least one attachment')

    project_id = None
    if data.get('project_id'):
        project = db.session.get(Project, require_uuid(data['project_id'], 'project_id'))
        if project is None or {sender_id, receiver_id} != {project.customer_id, project.provider_id}:
            raise ValidationError('Project does not belong to this conversation')
        project_id = project.id

    with atomic():
        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            project_id=project_id,
            content=content or None,
            message_type=message_type,
            attachments=attachments
        )
        db.session.add(message)
        notify(receiver_id, 'message', 'New message',
               content[:120] if content else 'You received a file.',
               {'sender_id': sender_id})
    return message


def mark_as_read(user_id, message_id):
    message = db.session.get(Message, require_uuid(message_id, 'message id'))
    if message is None or message.receiver_id != user_id:
        raise NotFoundError("Message not found or you don't have permission")
    if not message.is_read:
        with atomic():
            message.is_read = True
            message.read_at = datetime.utcnow()
    return message


def delete_message(user_id, message_id):
    message = db.session.get(Message, require_uuid(message_id, 'message id'))
    if message is None or message.sender_id != user_id:
        raise NotFoundError("Message not found or you don't have permission")
    with atomic():
        db.session.delete(message)


def upload_attachment(user_id, file_storage):
    return save_upload(file_storage, 'messages', user_id)
