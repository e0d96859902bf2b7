"""
File storage

Multipart uploads (KYC documents, message and dispute attachments, transfer
proofs) are written to the local upload folder. Larger client-side uploads go
straight to S3 through presigned URLs.
"""
import os
import re
import time
import uuid
from contextlib import contextmanager

import boto3
from flask import current_app
from werkzeug.utils import secure_filename

from servicehub.errors import ServiceUnavailableError, ValidationError

DOCUMENT_EXTENSIONS = {'pdf', 'png', 'jpg', 'jpeg', 'webp'}
ATTACHMENT_EXTENSIONS = DOCUMENT_EXTENSIONS | {'gif', 'doc', 'docx', 'xls', 'xlsx', 'txt', 'zip', 'csv'}

UPLOAD_CATEGORIES = ('kyc', 'messages', 'disputes', 'payment-transfers', 'portfolio', 'avatars', 'attachments')


def file_extension(filename):
    if not filename or '.' not in filename:
        return ''
    return filename.rsplit('.', 1)[1].lower()


def allowed_file(filename, allowed=ATTACHMENT_EXTENSIONS):
    """Check if file extension is allowed"""
    return file_extension(filename) in allowed


def _safe_segment(value):
    return re.sub(r'[^a-zA-Z0-9_-]', '_', str(value or 'unassigned'))[:80]


def save_upload(file_storage, category, owner_id, prefix=None, allowed=ATTACHMENT_EXTENSIONS):
    """
    Store an uploaded file under ``<UPLOAD_FOLDER>/<category>/<owner_id>/``.

    Returns a dict with the relative path (used as ``file_url``), the original
    name, mime type and size.
    """
    if file_storage is None or not file_storage.filename:
        raise ValidationError('No file uploaded')
    if not allowed_file(file_storage.filename, allowed):
        raise ValidationError(f"File type not allowed. Allowed types: {', '.join(sorted(allowed))}")

    original_name = secure_filename(file_storage.filename) or 'upload'
    ext = file_extension(original_name)
    stem = prefix or uuid.uuid4().hex[:12]
    filename = f"{stem}-{int(time.time() * 1000)}.{ext}"

    relative_dir = os.path.join(category, _safe_segment(owner_id))
    absolute_dir = os.path.join(current_app.config['UPLOAD_FOLDER'], relative_dir)
    os.makedirs(absolute_dir, exist_ok=True)

    absolute_path = os.path.join(absolute_dir, filename)
    file_storage.save(absolute_path)

    return {
        'file_url': os.path.join('uploads', relative_dir, filename).replace(os.sep, '/'),
        'file_name': original_name,
        'mime_type': file_storage.mimetype,
        'file_size': os.path.getsize(absolute_path)
    }


def resolve_upload_path(file_url):
    """Absolute path of a stored upload, refusing paths outside the upload folder"""
    root = os.path.abspath(current_app.config['UPLOAD_FOLDER'])
    relative = file_url[len('uploads/'):] if file_url.startswith('uploads/') else file_url
    absolute = os.path.abspath(os.path.join(root, relative))
    if not absolute.startswith(root + os.sep):
        raise ValidationError('Invalid file path')
    return absolute


def discard_upload(file_url):
    """Remove a stored upload whose database row was never committed"""
    try:
        os.remove(resolve_upload_path(file_url))
    except FileNotFoundError:
        pass


@contextmanager
def discard_on_error(file_urls):
    """Delete freshly stored uploads when the enclosed block raises"""
    try:
        yield
    except Exception:
        for file_url in file_urls:
            discard_upload(file_url)
        raise


def _s3_client():
    return boto3.client('s3', region_name=current_app.config['AWS_REGION'])


def _bucket():
    bucket = current_app.config.get('S3_BUCKET')
    if not bucket:
        raise ServiceUnavailableError('Object storage is not configured')
    return bucket


def make_object_key(category, owner_id, file_name):
    if category not in UPLOAD_CATEGORIES:
        raise ValidationError(f"Invalid category. Must be one of: {', '.join(UPLOAD_CATEGORIES)}")
    ext = file_extension(file_name)
    suffix = f".{ext}" if ext and re.fullmatch(r'[a-z0-9]{1,10}', ext) else ''
    return f"uploads/{category}/{_safe_segment(owner_id)}/{uuid.uuid4()}{suffix}"


def presign_put_object(key, content_type=None):
    bucket = _bucket()
    params = {'Bucket': bucket, 'Key': key}
    if content_type:
        params['ContentType'] = str(content_type)
    expires_in = current_app.config['PRESIGNED_URL_EXPIRY']
    url = _s3_client().generate_presigned_url(
        ClientMethod='put_object',
        Params=params,
        ExpiresIn=expires_in
    )
    return {'bucket': bucket, 'key': key, 'upload_url': url, 'expires_in': expires_in}


def presign_get_object(key):
    bucket = _bucket()
    expires_in = current_app.config['PRESIGNED_URL_EXPIRY']
    url = _s3_client().generate_presigned_url(
        ClientMethod='get_object',
        Params={'Bucket': bucket, 'Key': key},
        ExpiresIn=expires_in
    )
    return {'bucket': bucket, 'key': key, 'download_url': url, 'expires_in': expires_in}
