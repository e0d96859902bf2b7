"""Admin endpoints: disputes, payments, projects, users and reports"""
from flask import Blueprint, request

from servicehub.auth import admin_required, current_user
from servicehub.errors import ok
from servicehub.services import admin_service, dispute_service, payment_service
from servicehub.utils import get_json, get_pagination

admin_bp = Blueprint('admin', __name__)


# Disputes

@admin_bp.route('/disputes', methods=['GET'])
@admin_required
def list_disputes():
    disputes = dispute_service.list_disputes(request.args.get('status'), request.args.get('search'))
    return ok([d.to_dict() for d in disputes])


@admin_bp.route('/disputes/stats', methods=['GET'])
@admin_required
def dispute_stats():
    return ok(dispute_service.dispute_stats())


@admin_bp.route('/disputes/<dispute_id>', methods=['GET'])
@admin_required
def get_dispute(dispute_id):
    return ok(dispute_service.get_dispute(dispute_id).to_dict())


@admin_bp.route('/disputes/<dispute_id>/resolve', methods=['PATCH', 'POST'])
@admin_required
def resolve_dispute(dispute_id):
    data = get_json()
    dispute = dispute_service.resolve_dispute(current_user(), dispute_id, data.get('status'),
                                              data.get('resolution'))
    return ok(dispute.to_dict(), f"Dispute {dispute.status.lower().replace('_', ' ')}")


@admin_bp.route('/disputes/<dispute_id>/payout', methods=['POST'])
@admin_required
def dispute_payout(dispute_id):
    data = get_json()
    result = dispute_service.simulate_payout(
        current_user(), dispute_id,
        refund_amount=data.get('refund_amount'),
        release_amount=data.get('release_amount'),
        note=data.get('note')
    )
    return ok(result, 'Payout processed and dispute resolved')


@admin_bp.route('/disputes/<dispute_id>/redo-milestone', methods=['POST'])
@admin_required
def redo_milestone(dispute_id):
    result = dispute_service.redo_milestone(current_user(), dispute_id, get_json().get('note'))
    return ok(result, 'Milestone returned to the provider')


# Payments

@admin_bp.route('/payments', methods=['GET'])
@admin_required
def list_payments():
    page, limit = get_pagination(default_limit=20)
    items, pagination = payment_service.list_payments(page, limit, status=request.args.get('status'),
                                                      search=request.args.get('search'))
    return ok({'items': items, 'pagination': pagination})


@admin_bp.route('/payments/stats', methods=['GET'])
@admin_required
def payment_stats():
    return ok(payment_service.payment_stats())


@admin_bp.route('/payments/ready-to-transfer', methods=['GET'])
@admin_required
def ready_to_transfer():
    return ok(payment_service.ready_to_transfer())


@admin_bp.route('/payments/<payment_id>', methods=['GET'])
@admin_required
def get_payment(payment_id):
    payment = payment_service.get_payment(payment_id)
    data = payment.to_dict()
    data['invoice'] = payment.invoice.to_dict() if payment.invoice else None
    data['transfer_proof_path'] = payment.transfer_proof_path
    return ok(data)


@admin_bp.route('/payments/<payment_id>/confirm-transfer', methods=['POST'])
@admin_required
def confirm_transfer(payment_id):
    """Multipart: ``reference`` plus an optional ``proof`` file; JSON also accepted"""
    if request.form or request.files:
        reference = request.form.get('reference')
        proof = request.files.get('proof')
    else:
        reference = get_json().get('reference')
        proof = None
    payment = payment_service.confirm_transfer(current_user(), payment_id, reference, proof)
    return ok(payment.to_dict(), 'Bank transfer confirmed')


@admin_bp.route('/payments/<payment_id>/refund', methods=['POST'])
@admin_required
def refund_payment(payment_id):
    payment = payment_service.refund_payment(current_user(), payment_id, get_json().get('reason'))
    return ok(payment.to_dict(), 'Payment refunded')


# Projects

@admin_bp.route('/projects', methods=['GET'])
@admin_required
def list_projects():
    page, limit = get_pagination(default_limit=20)
    items, pagination = admin_service.list_projects(page, limit, status=request.args.get('status'),
                                                    search=request.args.get('search'))
    return ok({'items': items, 'pagination': pagination})


@admin_bp.route('/projects/<project_id>', methods=['GET'])
@admin_required
def get_project(project_id):
    return ok(admin_service.get_project(project_id))


# Users

@admin_bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    page, limit = get_pagination(default_limit=20)
    items, pagination = admin_service.list_users(
        page, limit,
        role=request.args.get('role'),
        kyc_status=request.args.get('kyc_status'),
        search=request.args.get('search')
    )
    return ok({'items': items, 'pagination': pagination})


@admin_bp.route('/users/<user_id>', methods=['GET'])
@admin_required
def get_user(user_id):
    return ok(admin_service.get_user(user_id))


@admin_bp.route('/users/<user_id>/status', methods=['PATCH'])
@admin_required
def update_user_status(user_id):
    user = admin_service.update_user_status(current_user(), user_id, get_json())
    return ok(user.to_dict(), 'User status updated')


# Reports

@admin_bp.route('/reports', methods=['GET'])
@admin_required
def reports():
    return ok(admin_service.reports(request.args.get('date_range')))
