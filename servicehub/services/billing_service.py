"""Billing summaries for companies and providers"""
from collections import defaultdict
from datetime import datetime

from servicehub.errors import ValidationError
from servicehub.lifecycle import MilestoneStatus, PaymentStatus
from servicehub.models import Invoice, Milestone, Payment, Project, ProviderProfile
from servicehub.services.payment_service import get_user_payment, provider_earnings
from servicehub.utils import atomic, paginate_query


def _month_start(now=None):
    now = now or datetime.utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def previous_months(count, now=None):
    """First day of each of the last ``count`` months, oldest first"""
    start = _month_start(now)
    months = []
    year, month = start.year, start.month
    for _ in range(count):
        months.append(datetime(year, month, 1))
        month -= 1
        if month == 0:
            month, year = 12, year - 1
    return list(reversed(months))


def company_overview(customer_id):
    payments = Payment.query.filter_by(customer_id=customer_id).all()
    settled = [p for p in payments if p.status in PaymentStatus.SETTLED]
    pending = [p for p in payments if p.status in (PaymentStatus.PENDING, PaymentStatus.IN_PROGRESS)]
    month_start = _month_start()
    this_month = [p for p in settled if p.escrowed_at and p.escrowed_at >= month_start]

    total_spent = round(sum(p.amount for p in settled), 2)
    recent_invoices = Invoice.query.filter_by(customer_id=customer_id) \
        .order_by(Invoice.issued_at.desc()).limit(5).all()
    recent_transactions = sorted(payments, key=lambda p: p.created_at, reverse=True)[:5]
    return {
        'total_spent': total_spent,
        'pending_payments': round(sum(p.amount for p in pending), 2),
        'this_month_spent': round(sum(p.amount for p in this_month), 2),
        'average_transaction': round(total_spent / len(settled), 2) if settled else 0.0,
        'recent_invoices': [i.to_dict() for i in recent_invoices],
        'recent_transactions': [p.to_dict() for p in recent_transactions]
    }


def company_transactions(customer_id, page, limit, status=None):
    query = Payment.query.filter_by(customer_id=customer_id)
    if status:
        if status not in PaymentStatus.ALL:
            raise ValidationError('Invalid status filter')
        query = query.filter_by(status=status)
    payments, pagination = paginate_query(query.order_by(Payment.created_at.desc()), page, limit)
    return [p.to_dict() for p in payments], pagination


def company_invoices(customer_id, page, limit):
    query = Invoice.query.filter_by(customer_id=customer_id).order_by(Invoice.issued_at.desc())
    invoices, pagination = paginate_query(query, page, limit)
    return [i.to_dict() for i in invoices], pagination


def upcoming_payments(customer_id):
    """Unpaid locked or approved milestones due from today on"""
    today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    milestones = Milestone.query.join(Project, Milestone.project_id == Project.id) \
        .filter(Project.customer_id == customer_id,
                Milestone.status.in_((MilestoneStatus.LOCKED, MilestoneStatus.APPROVED)),
                Milestone.is_paid.is_(False),
                Milestone.due_date.isnot(None),
                Milestone.due_date >= today) \
        .order_by(Milestone.due_date.asc()).all()
    return [
        {
            'milestone_id': m.id,
            'title': m.title,
            'amount': m.amount,
            'due_date': m.due_date.isoformat(),
            'status': m.status,
            'project_id': m.project_id,
            'project_title': m.project.title
        }
        for m in milestones
    ]


def provider_overview(provider_id):
    payments = Payment.query.filter_by(provider_id=provider_id).all()
    earned = [p for p in payments if p.status in PaymentStatus.SETTLED]
    month_start = _month_start()

    monthly = defaultdict(float)
    for payment in earned:
        if payment.escrowed_at:
            monthly[(payment.escrowed_at.year, payment.escrowed_at.month)] += payment.provider_amount
    monthly_earnings = [
        {'month': month.strftime('%Y-%m'), 'amount': round(monthly[(month.year, month.month)], 2)}
        for month in previous_months(6)
    ]

    clients = defaultdict(lambda: {'amount': 0.0, 'payments': 0})
    for payment in earned:
        client = clients[payment.customer_id]
        client['name'] = payment.customer.name if payment.customer else None
        client['amount'] += payment.provider_amount
        client['payments'] += 1
    top_clients = sorted(
        ({'customer_id': cid, 'name': c['name'], 'amount': round(c['amount'], 2), 'payments': c['payments']}
         for cid, c in clients.items()),
        key=lambda c: c['amount'], reverse=True
    )[:5]

    project_count = Project.query.filter_by(provider_id=provider_id).count()
    total_earnings = round(sum(p.provider_amount for p in earned), 2)
    profile = ProviderProfile.query.filter_by(user_id=provider_id).first()

    summary = provider_earnings(provider_id)
    summary.update({
        'total_earnings': total_earnings,
        'pending_payments': round(sum(p.provider_amount for p in payments
                                      if p.status in (PaymentStatus.PENDING, PaymentStatus.IN_PROGRESS)), 2),
        'this_month': round(sum(p.provider_amount for p in earned
                                if p.escrowed_at and p.escrowed_at >= month_start), 2),
        'average_project_value': round(total_earnings / project_count, 2) if project_count else 0.0,
        'recent_payments': [p.to_dict() for p in sorted(payments, key=lambda p: p.created_at, reverse=True)[:5]],
        'monthly_earnings': monthly_earnings,
        'top_clients': top_clients,
        'bank_details': profile.to_dict(include_bank=True)['bank_details'] if profile else None
    })
    return summary


def update_bank_details(provider_id, data):
    profile = ProviderProfile.query.filter_by(user_id=provider_id).first()
    if profile is None:
        raise ValidationError('Create your provider profile first')

    bank_name = (data.get('bank_name') or '').strip()
    account_number = (data.get('bank_account_number') or '').replace(' ', '').replace('-', '')
    account_name = (data.get('bank_account_name') or '').strip()
    if not bank_name or not account_number or not account_name:
        raise ValidationError('bank_name, bank_account_number and bank_account_name are required')
    if not account_number.isdigit() or not 6 <= len(account_number) <= 20:
        raise ValidationError('Bank account number must be 6 to 20 digits')

    with atomic():
        profile.bank_name = bank_name
        profile.bank_account_number = account_number
        profile.bank_account_name = account_name
    return profile.to_dict(include_bank=True)['bank_details']


def clear_bank_details(provider_id):
    profile = ProviderProfile.query.filter_by(user_id=provider_id).first()
    if profile is None:
        raise ValidationError('Create your provider profile first')
    with atomic():
        profile.bank_name = None
        profile.bank_account_number = None
        profile.bank_account_name = None


def payment_detail(user_id, payment_id):
    payment = get_user_payment(user_id, payment_id)
    data = payment.to_dict()
    data['invoice'] = payment.invoice.to_dict() if payment.invoice else None
    return data


def payment_receipt(user_id, payment_id):
    payment = get_user_payment(user_id, payment_id)
    if payment.status not in PaymentStatus.SETTLED:
        raise ValidationError('A receipt is only available once the payment is escrowed')
    invoice = payment.invoice
    return {
        'receipt_number': invoice.invoice_number if invoice else None,
        'issued_at': invoice.issued_at.isoformat() if invoice else None,
        'project_title': payment.project.title,
        'milestone_title': payment.milestone.title,
        'customer': payment.customer.to_summary(),
        'provider': payment.provider.to_summary(),
        'amount': payment.amount,
        'platform_fee': payment.platform_fee,
        'provider_amount': payment.provider_amount,
        'currency': payment.currency,
        'status': payment.status,
        'bank_transfer_ref': payment.bank_transfer_ref
    }
