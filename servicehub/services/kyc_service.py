"""KYC document uploads and admin verification"""
import logging
from datetime import datetime

from servicehub.audit import audit_logger
from servicehub.errors import NotFoundError, ValidationError
from servicehub.lifecycle import KycDocumentStatus, KycDocumentType, KycStatus
from servicehub.models import KycDocument, User, db
from servicehub.services.notification_service import notify
from servicehub.storage import DOCUMENT_EXTENSIONS, discard_on_error, save_upload
from servicehub.utils import atomic, best_effort, require_uuid

logger = logging.getLogger(__name__)

# Admin list filter -> document status
ADMIN_STATUS_FILTERS = {
    'pending': KycDocumentStatus.UPLOADED,
    'approved': KycDocumentStatus.VERIFIED,
    'rejected': KycDocumentStatus.REJECTED,
}


def _set_user_kyc_status(user_id, kyc_status, is_verified=None):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError('User not found')
    user.kyc_status = kyc_status
    if is_verified is not None:
        user.is_verified = is_verified
    db.session.commit()
    return user


def upload_document(user_id, doc_type, file_storage):
    if doc_type not in KycDocumentType.ALL:
        raise ValidationError(f"Invalid document type. Must be one of: {', '.join(KycDocumentType.ALL)}")

    stored = save_upload(file_storage, 'kyc', user_id, prefix=doc_type, allowed=DOCUMENT_EXTENSIONS)
    document = KycDocument(
        user_id=user_id,
        type=doc_type,
        status=KycDocumentStatus.UPLOADED,
        **stored
    )
    with discard_on_error([stored['file_url']]), atomic():
        db.session.add(document)

    result = best_effort('mark user pending verification',
                         _set_user_kyc_status, user_id, KycStatus.PENDING_VERIFICATION)
    if not result.ok:
        logger.warning(f"KYC document {document.id} stored but user {user_id} status not updated")
    return document


def list_user_documents(user_id):
    require_uuid(user_id, 'user id')
    return KycDocument.query.filter_by(user_id=user_id).order_by(KycDocument.uploaded_at.desc()).all()


def list_pending_documents():
    return KycDocument.query.filter_by(status=KycDocumentStatus.UPLOADED) \
        .order_by(KycDocument.uploaded_at.asc()).all()


def get_document(document_id):
    document = db.session.get(KycDocument, require_uuid(document_id, 'document id'))
    if document is None:
        raise NotFoundError('Document not found')
    return document


def review_document(document_id, status, reviewer, notes=None):
    """Verify or reject one document and reflect it on the owner"""
    if status not in (KycDocumentStatus.VERIFIED, KycDocumentStatus.REJECTED):
        raise ValidationError("Status must be 'verified' or 'rejected'")

    document = get_document(document_id)
    with atomic():
        document.status = status
        document.review_notes = notes
        document.reviewed_by = reviewer.id
        document.reviewed_at = datetime.utcnow()
        notify(document.user_id, 'kyc', f"KYC document {status}",
               notes or f"Your {document.type} document was {status}.",
               {'document_id': document.id, 'status': status})

    if status == KycDocumentStatus.VERIFIED:
        best_effort('activate verified user', _set_user_kyc_status,
                    document.user_id, KycStatus.ACTIVE, True)
    else:
        best_effort('return user to pending verification', _set_user_kyc_status,
                    document.user_id, KycStatus.PENDING_VERIFICATION, False)

    audit_logger.log_admin_action(f"KYC document {status}", 'kyc_document', document.id,
                                  details={'user_id': document.user_id, 'notes': notes})
    return document


def list_users_for_review(status_filter='pending'):
    """Users with KYC documents, grouped, for the admin queue"""
    status_filter = (status_filter or 'pending').lower()
    if status_filter != 'all' and status_filter not in ADMIN_STATUS_FILTERS:
        raise ValidationError('Status must be one of: pending, approved, rejected, all')

    query = KycDocument.query
    if status_filter != 'all':
        query = query.filter_by(status=ADMIN_STATUS_FILTERS[status_filter])
    documents = query.order_by(KycDocument.uploaded_at.desc()).all()

    users = {}
    for document in documents:
        entry = users.get(document.user_id)
        if entry is None:
            entry = document.to_dict(include_user=True)['user']
            entry['documents'] = []
            users[document.user_id] = entry
        entry['documents'].append(document.to_dict())
    return list(users.values())


def decide_user(user_id, approve, reviewer, notes=None):
    """Approve or reject every uploaded document of a user at once"""
    user = db.session.get(User, require_uuid(user_id, 'user id'))
    if user is None:
        raise NotFoundError('User not found')

    documents = KycDocument.query.filter_by(user_id=user.id, status=KycDocumentStatus.UPLOADED).all()
    if not documents:
        raise ValidationError('No documents awaiting review for this user')

    new_status = KycDocumentStatus.VERIFIED if approve else KycDocumentStatus.REJECTED
    now = datetime.utcnow()
    with atomic():
        for document in documents:
            document.status = new_status
            document.review_notes = notes
            document.reviewed_by = reviewer.id
            document.reviewed_at = now
        user.kyc_status = KycStatus.ACTIVE if approve else KycStatus.INACTIVE
        user.is_verified = bool(approve)
        notify(user.id, 'kyc', 'KYC approved' if approve else 'KYC rejected',
               notes or ('Your account has been verified.' if approve
                         else 'Your documents were rejected. Please upload new documents.'),
               {'status': new_status})

    audit_logger.log_admin_action(f"KYC {'approved' if approve else 'rejected'}", 'user', user.id,
                                  details={'documents': len(documents), 'notes': notes})
    return {'user': user.to_dict(), 'documents': [d.to_dict() for d in documents]}
