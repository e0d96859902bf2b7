"""
Milestone escrow payments

PENDING -> IN_PROGRESS (gateway intent created) -> ESCROWED (funds held)
-> RELEASED (approved, awaiting manual bank transfer) -> TRANSFERRED.
A failed charge ends in FAILED; an admin refund of held funds ends in REFUNDED.
"""
import logging
import uuid
from datetime import datetime

from flask import current_app
from sqlalchemy import or_

from servicehub.audit import audit_logger
from servicehub.errors import NotFoundError, ValidationError
from servicehub.lifecycle import BankTransferStatus, MilestoneStatus, PaymentStatus, calculate_fees
from servicehub.models import Invoice, Milestone, Payment, Project, ProviderProfile, db
from servicehub.payment_gateway import gateway
from servicehub.permissions import require_milestone
from servicehub.services.milestone_service import mark_milestone_paid
from servicehub.services.notification_service import notify, notify_admins, send_emails
from servicehub.storage import DOCUMENT_EXTENSIONS, discard_on_error, save_upload
from servicehub.utils import atomic, paginate_query, parse_amount, require_uuid

logger = logging.getLogger(__name__)


def generate_invoice_number():
    """Generate a unique invoice number with collision resistance"""
    date_part = datetime.utcnow().strftime('%Y%m%d')
    invoice_number = f"INV-{date_part}-{uuid.uuid4().hex[:8].upper()}"

    max_attempts = 5
    for _ in range(max_attempts):
        if not Invoice.query.filter_by(invoice_number=invoice_number).first():
            return invoice_number
        invoice_number = f"INV-{date_part}-{uuid.uuid4().hex[:8].upper()}"
    return invoice_number


def issue_invoice(payment):
    """Create the invoice for an escrowed payment (idempotent)"""
    existing = Invoice.query.filter_by(payment_id=payment.id).first()
    if existing:
        logger.info(f"Invoice already exists for payment {payment.id}: {existing.invoice_number}")
        return existing

    milestone = payment.milestone
    invoice = Invoice(
        invoice_number=generate_invoice_number(),
        payment_id=payment.id,
        project_id=payment.project_id,
        customer_id=payment.customer_id,
        provider_id=payment.provider_id,
        amount=payment.amount,
        platform_fee=payment.platform_fee,
        total_amount=payment.amount,
        currency=payment.currency,
        status='paid',
        description=f"Escrow funding for milestone: {milestone.title if milestone else payment.milestone_id}"
    )
    db.session.add(invoice)
    return invoice


def get_payment(payment_id):
    payment = db.session.get(Payment, require_uuid(payment_id, 'payment id'))
    if payment is None:
        raise NotFoundError('Payment not found')
    return payment


def initiate_payment(customer_id, project_id, milestone_id, amount=None, currency=None):
    """Create a payment for a locked milestone and open a gateway intent"""
    milestone = require_milestone(milestone_id, customer_id, 'customer')
    if milestone.project_id != require_uuid(project_id, 'project id'):
        raise ValidationError('Milestone does not belong to this project')
    if milestone.status != MilestoneStatus.LOCKED:
        raise ValidationError('Milestone must be locked before payment')

    active = Payment.query.filter(
        Payment.milestone_id == milestone.id,
        Payment.status.in_((PaymentStatus.IN_PROGRESS, PaymentStatus.ESCROWED))
    ).first()
    if active:
        raise ValidationError(f"Milestone already has a payment in status {active.status}")

    amount = parse_amount(amount, 'amount') if amount is not None else milestone.amount
    platform_fee, provider_amount = calculate_fees(amount, current_app.config['PLATFORM_FEE_PERCENT'])
    project = milestone.project

    with atomic():
        payment = Payment(
            project_id=project.id,
            milestone_id=milestone.id,
            customer_id=project.customer_id,
            provider_id=project.provider_id,
            amount=amount,
            platform_fee=platform_fee,
            provider_amount=provider_amount,
            currency=(currency or current_app.config['DEFAULT_CURRENCY']).upper(),
            status=PaymentStatus.PENDING
        )
        db.session.add(payment)

    try:
        intent = gateway.create_payment_intent(
            amount=amount,
            currency=payment.currency,
            description=f"{project.title} - {milestone.title}",
            metadata={'payment_id': payment.id, 'milestone_id': milestone.id, 'project_id': project.id}
        )
    except Exception as e:
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = str(e)
        payment.failed_at = datetime.utcnow()
        db.session.commit()
        raise

    with atomic():
        payment.stripe_payment_intent_id = intent['id']
        payment.payment_method = intent['method']
        payment.status = PaymentStatus.IN_PROGRESS

    return {
        'payment_id': payment.id,
        'client_secret': intent['client_secret'],
        'payment_intent_id': intent['id'],
        'amount': amount,
        'platform_fee': platform_fee,
        'provider_amount': provider_amount,
        'currency': payment.currency,
        'status': payment.status
    }


def _escrow(payment):
    """Mark funds as held; returns False when the payment was already escrowed"""
    if payment.status == PaymentStatus.ESCROWED:
        return False
    if payment.status != PaymentStatus.IN_PROGRESS:
        raise ValidationError(f"Cannot confirm a payment in status {payment.status}")

    charge_id = gateway.get_charge_id(payment.stripe_payment_intent_id or '')

    with atomic():
        payment.status = PaymentStatus.ESCROWED
        payment.stripe_charge_id = charge_id
        payment.escrowed_at = datetime.utcnow()
        milestone = payment.milestone
        milestone.funded_at = payment.escrowed_at
        if milestone.status == MilestoneStatus.LOCKED:
            milestone.status = MilestoneStatus.IN_PROGRESS
        issue_invoice(payment)
        notification = notify(payment.provider_id, 'PAYMENT_ESCROWED', 'Milestone funded',
                              f"RM{payment.amount:.2f} for '{milestone.title}' is held in escrow. You can start work.",
                              {'payment_id': payment.id, 'milestone_id': milestone.id})

    send_emails([notification])
    audit_logger.log_financial('payment_escrowed', 'Milestone payment escrowed', payment.amount,
                               'payment', payment.id)
    return True


def _fail(payment, reason):
    if payment.status not in (PaymentStatus.PENDING, PaymentStatus.IN_PROGRESS):
        raise ValidationError(f"Cannot fail a payment in status {payment.status}")
    with atomic():
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = reason
        payment.failed_at = datetime.utcnow()
        notify(payment.customer_id, 'payment', 'Payment failed',
               f"Your payment of RM{payment.amount:.2f} did not go through. Please try again.",
               {'payment_id': payment.id})


def finalize_payment(customer_id, payment_id, success, reason=None):
    payment = get_payment(payment_id)
    if payment.customer_id != customer_id:
        raise NotFoundError("Payment not found or you don't have permission")

    if success:
        _escrow(payment)
    else:
        _fail(payment, reason or 'Payment was not completed')
    return payment


def handle_webhook(payload, signature):
    """Drive payment status from signed Stripe events"""
    event = gateway.construct_event(payload, signature)
    intent = event['data']['object']
    payment = Payment.query.filter_by(stripe_payment_intent_id=intent['id']).first()
    if payment is None:
        logger.warning(f"Webhook {event['type']} for unknown intent {intent['id']}")
        return {'handled': False}

    if event['type'] == 'payment_intent.succeeded':
        _escrow(payment)
    elif event['type'] == 'payment_intent.payment_failed':
        if payment.status in (PaymentStatus.PENDING, PaymentStatus.IN_PROGRESS):
            error = intent.get('last_payment_error') or {}
            _fail(payment, error.get('message') or 'Payment failed')
    else:
        return {'handled': False}
    return {'handled': True, 'payment_id': payment.id, 'status': payment.status}


def release_payment(customer_id, milestone_id):
    """Release escrow for an approved milestone; an admin then transfers funds"""
    milestone = require_milestone(milestone_id, customer_id, 'customer')
    if milestone.status != MilestoneStatus.APPROVED:
        raise ValidationError('Milestone must be approved before releasing payment')

    payment = Payment.query.filter_by(milestone_id=milestone.id, status=PaymentStatus.ESCROWED).first()
    if payment is None:
        raise ValidationError('No escrowed payment found for this milestone')

    profile = ProviderProfile.query.filter_by(user_id=payment.provider_id).first()
    if profile is None or not profile.has_bank_details:
        raise ValidationError('Provider has not added bank details yet')

    with atomic():
        payment.status = PaymentStatus.RELEASED
        payment.released_at = datetime.utcnow()
        payment.bank_transfer_status = BankTransferStatus.PENDING
        notifications = notify_admins('payment', 'Manual payout required',
                                      f"Transfer RM{payment.provider_amount:.2f} to {profile.bank_account_name} "
                                      f"({profile.bank_name}) for '{milestone.title}'.",
                                      {'payment_id': payment.id})
        notifications.append(notify(payment.provider_id, 'payment', 'Payment released',
                                    f"RM{payment.provider_amount:.2f} for '{milestone.title}' was released "
                                    f"and will be transferred to your bank account.",
                                    {'payment_id': payment.id, 'milestone_id': milestone.id}))

    send_emails(notifications)
    audit_logger.log_financial('payment_released', 'Escrow released for approved milestone',
                               payment.amount, 'payment', payment.id)
    return payment


def request_withdrawal(provider_id):
    """Ask admins to transfer every released payment still waiting on a transfer"""
    profile = ProviderProfile.query.filter_by(user_id=provider_id).first()
    if profile is None or not profile.has_bank_details:
        raise ValidationError('Please add your bank details before withdrawing')

    payments = Payment.query.filter_by(provider_id=provider_id, status=PaymentStatus.RELEASED,
                                       bank_transfer_status=BankTransferStatus.PENDING).all()
    if not payments:
        raise ValidationError('No released funds available for withdrawal')

    total = round(sum(p.provider_amount for p in payments), 2)
    now = datetime.utcnow()
    with atomic():
        for payment in payments:
            payment.bank_transfer_status = BankTransferStatus.REQUESTED
            payment.withdrawal_requested_at = now
        notify_admins('payment', 'Withdrawal requested',
                      f"A provider requested a withdrawal of RM{total:.2f} across {len(payments)} payment(s).",
                      {'provider_id': provider_id, 'payment_ids': [p.id for p in payments]})

    return {'amount': total, 'payments': len(payments), 'requested_at': now.isoformat()}


def confirm_transfer(admin, payment_id, reference, proof_file=None):
    """Admin confirms the manual bank transfer of a released payment"""
    payment = get_payment(payment_id)
    if payment.status != PaymentStatus.RELEASED:
        raise ValidationError('Only released payments can be marked as transferred')
    if not reference or not str(reference).strip():
        raise ValidationError('Bank transfer reference is required')

    proof = None
    if proof_file is not None and proof_file.filename:
        proof = save_upload(proof_file, 'payment-transfers', payment.id, prefix='proof', allowed=DOCUMENT_EXTENSIONS)

    with discard_on_error([proof['file_url']] if proof else []), atomic():
        payment.status = PaymentStatus.TRANSFERRED
        payment.bank_transfer_status = BankTransferStatus.COMPLETED
        payment.bank_transfer_ref = str(reference).strip()
        payment.transferred_at = datetime.utcnow()
        if proof:
            payment.transfer_proof_path = proof['file_url']
        mark_milestone_paid(payment.milestone)
        notify(payment.provider_id, 'payment', 'Funds transferred',
               f"RM{payment.provider_amount:.2f} was transferred to your bank account (ref {payment.bank_transfer_ref}).",
               {'payment_id': payment.id})

    audit_logger.log_financial('payment_transferred', 'Bank transfer confirmed', payment.provider_amount,
                               'payment', payment.id, details={'reference': payment.bank_transfer_ref},
                               user_id=admin.id)
    return payment


def refund_payment(admin, payment_id, reason=None):
    payment = get_payment(payment_id)
    if payment.status != PaymentStatus.ESCROWED:
        raise ValidationError('Only escrowed payments can be refunded')

    refund_id = gateway.refund(payment.stripe_payment_intent_id or '', payment.amount)

    with atomic():
        payment.status = PaymentStatus.REFUNDED
        payment.stripe_refund_id = refund_id
        payment.refunded_at = datetime.utcnow()
        payment.failure_reason = reason
        payment.milestone.status = MilestoneStatus.CANCELLED
        if payment.invoice is not None:
            payment.invoice.status = 'refunded'
        notify(payment.customer_id, 'payment', 'Payment refunded',
               f"RM{payment.amount:.2f} was refunded." + (f" Reason: {reason}" if reason else ''),
               {'payment_id': payment.id})

    audit_logger.log_financial('payment_refunded', 'Escrowed payment refunded', payment.amount,
                               'payment', payment.id, details={'reason': reason}, user_id=admin.id)
    return payment


def list_payments(page, limit, status=None, search=None):
    query = Payment.query.join(Project, Payment.project_id == Project.id)
    if status and status != 'all':
        if status not in PaymentStatus.ALL:
            raise ValidationError('Invalid status filter')
        query = query.filter(Payment.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.join(Milestone, Payment.milestone_id == Milestone.id).filter(or_(
            Project.title.ilike(pattern),
            Milestone.title.ilike(pattern),
            Payment.bank_transfer_ref.ilike(pattern),
            Payment.stripe_payment_intent_id.ilike(pattern)
        ))
    payments, pagination = paginate_query(query.order_by(Payment.created_at.desc()), page, limit)
    return [p.to_dict() for p in payments], pagination


def payment_stats():
    rows = db.session.query(Payment.status, db.func.count(Payment.id), db.func.coalesce(db.func.sum(Payment.amount), 0.0),
                            db.func.coalesce(db.func.sum(Payment.platform_fee), 0.0)) \
        .group_by(Payment.status).all()
    by_status = {status: {'count': count, 'amount': round(float(amount), 2)} for status, count, amount, _ in rows}
    for status in PaymentStatus.ALL:
        by_status.setdefault(status, {'count': 0, 'amount': 0.0})

    platform_revenue = sum(float(fees) for status, _, _, fees in rows if status in PaymentStatus.SETTLED)
    return {
        'total_payments': sum(v['count'] for v in by_status.values()),
        'total_volume': round(sum(by_status[s]['amount'] for s in PaymentStatus.SETTLED), 2),
        'platform_revenue': round(platform_revenue, 2),
        'escrowed_amount': by_status[PaymentStatus.ESCROWED]['amount'],
        'pending_transfer_amount': by_status[PaymentStatus.RELEASED]['amount'],
        'by_status': by_status
    }


def ready_to_transfer():
    """Released payments awaiting a manual bank transfer, with payout details"""
    payments = Payment.query.filter_by(status=PaymentStatus.RELEASED) \
        .order_by(Payment.released_at.asc()).all()
    result = []
    for payment in payments:
        data = payment.to_dict()
        profile = ProviderProfile.query.filter_by(user_id=payment.provider_id).first()
        data['bank_details'] = {
            'bank_name': profile.bank_name,
            'bank_account_number': profile.bank_account_number,
            'bank_account_name': profile.bank_account_name
        } if profile else None
        result.append(data)
    return result


def provider_earnings(provider_id):
    payments = Payment.query.filter_by(provider_id=provider_id).all()

    def total(*statuses):
        return round(sum(p.provider_amount for p in payments if p.status in statuses), 2)

    return {
        'escrowed': total(PaymentStatus.ESCROWED),
        'released': total(PaymentStatus.RELEASED),
        'transferred': total(PaymentStatus.TRANSFERRED),
        'total': total(PaymentStatus.ESCROWED, PaymentStatus.RELEASED, PaymentStatus.TRANSFERRED),
        'available_for_withdrawal': round(sum(
            p.provider_amount for p in payments
            if p.status == PaymentStatus.RELEASED and p.bank_transfer_status == BankTransferStatus.PENDING
        ), 2)
    }


def get_user_payment(user_id, payment_id):
    """A payment visible to one of its parties"""
    payment = get_payment(payment_id)
    if user_id not in (payment.customer_id, payment.provider_id):
        raise NotFoundError("Payment not found or you don't have permission")
    return payment
