from flask import Blueprint, request

from servicehub.auth import current_user, login_required
from servicehub.errors import NotFoundError, ValidationError, ok
from servicehub.storage import make_object_key, presign_get_object, presign_put_object
from servicehub.utils import get_json

uploads_bp = Blueprint('uploads', __name__)


@uploads_bp.route('/presigned-url', methods=['POST'])
@login_required
def presigned_url():
    """Presigned S3 PUT for a client-side upload"""
    data = get_json()
    file_name = data.get('file_name')
    if not file_name:
        raise ValidationError('file_name is required')
    key = make_object_key(data.get('category', 'attachments'), current_user().id, file_name)
    return ok(presign_put_object(key, data.get('content_type')))


@uploads_bp.route('/download', methods=['GET'])
@login_required
def download_url():
    key = request.args.get('key')
    if not key:
        raise ValidationError('key is required')
    user = current_user()
    parts = key.split('/')
    owner_id = parts[2] if len(parts) > 3 and parts[0] == 'uploads' else None
    if not user.is_admin and owner_id != user.id:
        raise NotFoundError("File not found or you don't have permission")
    return ok(presign_get_object(key))
