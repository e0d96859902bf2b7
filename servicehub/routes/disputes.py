from flask import Blueprint, request

from servicehub.auth import current_user, login_required
from servicehub.errors import NotFoundError, created, ok
from servicehub.services import dispute_service
from servicehub.utils import get_json

disputes_bp = Blueprint('disputes', __name__)


def _form_or_json():
    """Disputes accept JSON or multipart (with an ``attachment`` file)"""
    if request.files or request.form:
        return request.form.to_dict(), request.files.get('attachment')
    return get_json(), None


@disputes_bp.route('', methods=['POST'])
@login_required
def raise_dispute():
    data, attachment = _form_or_json()
    dispute = dispute_service.raise_dispute(current_user().id, data, attachment)
    return created(dispute.to_dict(), 'Dispute raised')


@disputes_bp.route('/project/<project_id>', methods=['GET'])
@login_required
def latest_for_project(project_id):
    dispute = dispute_service.get_latest_project_dispute(current_user().id, project_id)
    return ok(dispute.to_dict())


@disputes_bp.route('/project/<project_id>/all', methods=['GET'])
@login_required
def all_for_project(project_id):
    disputes = dispute_service.list_project_disputes(current_user().id, project_id)
    return ok([d.to_dict() for d in disputes])


@disputes_bp.route('/<dispute_id>', methods=['GET'])
@login_required
def get_dispute(dispute_id):
    user = current_user()
    dispute = dispute_service.get_dispute(dispute_id)
    if not user.is_admin and user.id not in (dispute.project.customer_id, dispute.project.provider_id):
        raise NotFoundError("Dispute not found or you don't have permission")
    return ok(dispute.to_dict())


@disputes_bp.route('/<dispute_id>', methods=['PATCH', 'PUT'])
@login_required
def update_dispute(dispute_id):
    data, attachment = _form_or_json()
    dispute = dispute_service.update_own_dispute(current_user().id, dispute_id, data, attachment)
    return ok(dispute.to_dict(), 'Dispute updated')
