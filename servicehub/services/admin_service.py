"""Admin views over users, projects and platform reports"""
from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import or_

from servicehub.audit import audit_logger
from servicehub.errors import NotFoundError, ValidationError
from servicehub.lifecycle import DisputeStatus, KycStatus, PaymentStatus, ProjectStatus, ServiceRequestStatus
from servicehub.models import Dispute, Payment, Project, ServiceRequest, User, db
from servicehub.services.billing_service import previous_months
from servicehub.utils import atomic, paginate_list, paginate_query, parse_bool, require_uuid

DATE_RANGES = {'7d': 7, '30d': 30, '90d': 90, '1y': 365}


def list_users(page, limit, role=None, kyc_status=None, search=None):
    query = User.query
    if kyc_status:
        if kyc_status not in KycStatus.ALL:
            raise ValidationError(f"kyc_status must be one of: {', '.join(KycStatus.ALL)}")
        query = query.filter(User.kyc_status == kyc_status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    query = query.order_by(User.created_at.desc())

    if role:
        # roles is a JSON list, filtered after the query so it works on every backend
        users, pagination = paginate_list([u for u in query.all() if u.has_role(role.upper())], page, limit)
        return [u.to_dict() for u in users], pagination

    users, pagination = paginate_query(query, page, limit)
    return [u.to_dict() for u in users], pagination


def get_user(user_id):
    user = db.session.get(User, require_uuid(user_id, 'user id'))
    if user is None:
        raise NotFoundError('User not found')
    data = user.to_dict()
    data['customer_profile'] = user.customer_profile.to_dict() if user.customer_profile else None
    data['provider_profile'] = user.provider_profile.to_dict() if user.provider_profile else None
    return data


def update_user_status(admin, user_id, data):
    user = db.session.get(User, require_uuid(user_id, 'user id'))
    if user is None:
        raise NotFoundError('User not found')
    if user.id == admin.id:
        raise ValidationError('You cannot change your own status')

    kyc_status = data.get('kyc_status')
    if kyc_status is not None and kyc_status not in KycStatus.ALL:
        raise ValidationError(f"kyc_status must be one of: {', '.join(KycStatus.ALL)}")
    if kyc_status is None and 'is_verified' not in data:
        raise ValidationError('Provide kyc_status or is_verified')

    previous = {'kyc_status': user.kyc_status, 'is_verified': user.is_verified}
    with atomic():
        if kyc_status is not None:
            user.kyc_status = kyc_status
        if 'is_verified' in data:
            user.is_verified = parse_bool(data['is_verified'])

    audit_logger.log_admin_action('User status updated', 'user', user.id,
                                  details={'before': previous,
                                           'after': {'kyc_status': user.kyc_status,
                                                     'is_verified': user.is_verified}})
    return user


def list_projects(page, limit, status=None, search=None):
    query = Project.query
    if status:
        if status not in ProjectStatus.ALL:
            raise ValidationError(f"Status must be one of: {', '.join(ProjectStatus.ALL)}")
        query = query.filter(Project.status == status)
    if search:
        query = query.filter(Project.title.ilike(f"%{search}%"))
    projects, pagination = paginate_query(query.order_by(Project.created_at.desc()), page, limit)
    return [p.to_dict(include_milestones=False) for p in projects], pagination


def get_project(project_id):
    project = db.session.get(Project, require_uuid(project_id, 'project id'))
    if project is None:
        raise NotFoundError('Project not found')
    data = project.to_dict()
    data['payments'] = [p.to_dict() for p in
                        Payment.query.filter_by(project_id=project.id).order_by(Payment.created_at.desc())]
    data['disputes'] = [d.to_dict() for d in
                        Dispute.query.filter_by(project_id=project.id).order_by(Dispute.created_at.desc())]
    return data


def _range_start(date_range):
    if date_range in (None, '', 'all'):
        return None
    if date_range not in DATE_RANGES:
        raise ValidationError(f"date_range must be one of: all, {', '.join(DATE_RANGES)}")
    return datetime.utcnow() - timedelta(days=DATE_RANGES[date_range])


def reports(date_range=None):
    """Platform totals, revenue series and leaderboards"""
    since = _range_start(date_range)

    payments = Payment.query.all()
    settled = [p for p in payments if p.status in PaymentStatus.SETTLED
               and (since is None or (p.escrowed_at and p.escrowed_at >= since))]

    users = User.query.all()
    overview = {
        'total_users': len(users),
        'total_customers': sum(1 for u in users if u.has_role('CUSTOMER')),
        'total_providers': sum(1 for u in users if u.has_role('PROVIDER')),
        'verified_users': sum(1 for u in users if u.is_verified),
        'open_requests': ServiceRequest.query.filter_by(status=ServiceRequestStatus.OPEN).count(),
        'active_projects': Project.query.filter_by(status=ProjectStatus.IN_PROGRESS).count(),
        'completed_projects': Project.query.filter_by(status=ProjectStatus.COMPLETED).count(),
        'open_disputes': Dispute.query.filter(Dispute.status.in_(DisputeStatus.ACTIVE)).count()
    }

    monthly = defaultdict(lambda: {'volume': 0.0, 'revenue': 0.0})
    by_category = defaultdict(lambda: {'volume': 0.0, 'revenue': 0.0, 'payments': 0})
    providers = defaultdict(lambda: {'earnings': 0.0, 'payments': 0})
    for payment in settled:
        if payment.escrowed_at:
            bucket = monthly[(payment.escrowed_at.year, payment.escrowed_at.month)]
            bucket['volume'] += payment.amount
            bucket['revenue'] += payment.platform_fee or 0.0
        category = by_category[payment.project.category or 'other']
        category['volume'] += payment.amount
        category['revenue'] += payment.platform_fee or 0.0
        category['payments'] += 1
        provider = providers[payment.provider_id]
        provider['name'] = payment.provider.name if payment.provider else None
        provider['earnings'] += payment.provider_amount
        provider['payments'] += 1

    revenue_series = [
        {
            'month': month.strftime('%Y-%m'),
            'volume': round(monthly[(month.year, month.month)]['volume'], 2),
            'revenue': round(monthly[(month.year, month.month)]['revenue'], 2)
        }
        for month in previous_months(6)
    ]
    revenue_by_category = sorted(
        ({'category': name, 'volume': round(c['volume'], 2), 'revenue': round(c['revenue'], 2),
          'payments': c['payments']} for name, c in by_category.items()),
        key=lambda c: c['volume'], reverse=True
    )
    top_providers = sorted(
        ({'provider_id': pid, 'name': p['name'], 'earnings': round(p['earnings'], 2), 'payments': p['payments']}
         for pid, p in providers.items()),
        key=lambda p: p['earnings'], reverse=True
    )[:10]

    return {
        'date_range': date_range or 'all',
        'overview': overview,
        'payment_volume': round(sum(p.amount for p in settled), 2),
        'platform_revenue': round(sum(p.platform_fee or 0.0 for p in settled), 2),
        'payments_by_status': {status: sum(1 for p in payments if p.status == status)
                               for status in PaymentStatus.ALL},
        'revenue_series': revenue_series,
        'revenue_by_category': revenue_by_category,
        'top_providers': top_providers
    }
