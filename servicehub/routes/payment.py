from flask import Blueprint, current_app, request

from servicehub.auth import current_user, login_required, roles_required
from servicehub.errors import ValidationError, created, ok
from servicehub.lifecycle import Role
from servicehub.services import billing_service, payment_service
from servicehub.utils import get_json, parse_bool

payment_bp = Blueprint('payment', __name__)


@payment_bp.route('/create-intent', methods=['POST'])
@roles_required(Role.CUSTOMER)
def create_intent():
    """Open an escrow payment for a locked milestone"""
    data = get_json()
    result = payment_service.initiate_payment(
        current_user().id,
        data.get('project_id'),
        data.get('milestone_id'),
        amount=data.get('amount'),
        currency=data.get('currency')
    )
    return created(result, 'Payment intent created')


@payment_bp.route('/finalize', methods=['POST'])
@roles_required(Role.CUSTOMER)
def finalize():
    data = get_json()
    if 'success' not in data:
        raise ValidationError('success is required')
    payment = payment_service.finalize_payment(current_user().id, data.get('payment_id'),
                                               parse_bool(data['success']), data.get('reason'))
    return ok(payment.to_dict(), f"Payment {payment.status.lower()}")


@payment_bp.route('/withdraw', methods=['POST'])
@roles_required(Role.PROVIDER)
def withdraw():
    result = payment_service.request_withdrawal(current_user().id)
    return ok(result, 'Withdrawal requested. Funds will be transferred to your bank account.')


@payment_bp.route('/webhook', methods=['POST'])
def webhook():
    """Stripe webhook; the signature is checked against STRIPE_WEBHOOK_SECRET"""
    payload = request.get_data()
    signature = request.headers.get('Stripe-Signature', '')
    result = payment_service.handle_webhook(payload, signature)
    current_app.logger.info(f"Stripe webhook processed: {result}")
    return ok(result)


@payment_bp.route('/<payment_id>', methods=['GET'])
@login_required
def get_payment(payment_id):
    return ok(billing_service.payment_detail(current_user().id, payment_id))
