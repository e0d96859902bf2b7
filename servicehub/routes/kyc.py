import os

from flask import Blueprint, request, send_file

from servicehub.auth import admin_required, current_user, login_required
from servicehub.errors import ForbiddenError, NotFoundError, ValidationError, created, ok
from servicehub.lifecycle import KycDocumentType
from servicehub.services import kyc_service
from servicehub.storage import resolve_upload_path
from servicehub.utils import get_json, parse_bool

kyc_bp = Blueprint('kyc', __name__)
admin_kyc_bp = Blueprint('admin_kyc', __name__)

UPLOAD_TYPES = {
    'provider': KycDocumentType.PROVIDER_ID,
    'company': KycDocumentType.COMPANY_REG,
    'company-director': KycDocumentType.COMPANY_DIRECTOR_ID,
}


@kyc_bp.route('/upload/<kind>', methods=['POST'])
@login_required
def upload_document(kind):
    """Upload a KYC document (multipart field ``document``)"""
    doc_type = UPLOAD_TYPES.get(kind)
    if doc_type is None:
        raise NotFoundError('Unknown document type')

    if 'document' not in request.files:
        raise ValidationError('No document uploaded')

    document = kyc_service.upload_document(current_user().id, doc_type, request.files['document'])
    return created(document.to_dict(), 'Document uploaded successfully')


@kyc_bp.route('/user/<user_id>', methods=['GET'])
@login_required
def user_documents(user_id):
    user = current_user()
    if user.id != user_id and not user.is_admin:
        raise ForbiddenError('Forbidden - You can only view your own documents')
    documents = kyc_service.list_user_documents(user_id)
    return ok([d.to_dict() for d in documents])


@kyc_bp.route('/pending', methods=['GET'])
@admin_required
def pending_documents():
    documents = kyc_service.list_pending_documents()
    return ok([d.to_dict(include_user=True) for d in documents])


@kyc_bp.route('/<document_id>/status', methods=['PATCH'])
@admin_required
def review_document(document_id):
    data = get_json()
    document = kyc_service.review_document(document_id, data.get('status'), current_user(), data.get('notes'))
    return ok(document.to_dict(include_user=True), f"Document {document.status}")


@admin_kyc_bp.route('', methods=['GET'])
@admin_required
def users_for_review():
    return ok(kyc_service.list_users_for_review(request.args.get('status', 'pending')))


@admin_kyc_bp.route('/<user_id>', methods=['PATCH'])
@admin_required
def decide_user(user_id):
    data = get_json()
    if 'approve' not in data:
        raise ValidationError('approve is required')
    approve = parse_bool(data['approve'])
    result = kyc_service.decide_user(user_id, approve, current_user(), data.get('notes'))
    return ok(result, 'KYC approved' if approve else 'KYC rejected')


@admin_kyc_bp.route('/doc/<document_id>/download', methods=['GET'])
@admin_required
def download_document(document_id):
    document = kyc_service.get_document(document_id)
    path = resolve_upload_path(document.file_url)
    if not os.path.exists(path):
        raise NotFoundError('File not found on server')
    return send_file(path, mimetype=document.mime_type, as_attachment=True,
                     download_name=document.file_name or os.path.basename(path))
