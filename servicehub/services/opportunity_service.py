"""Open service requests offered to providers"""
from sqlalchemy import or_

from servicehub.errors import NotFoundError, ValidationError
from servicehub.lifecycle import ServiceRequestStatus
from servicehub.models import Proposal, ServiceRequest, db
from servicehub.services.service_request_service import map_category
from servicehub.utils import paginate_query, require_uuid


def _annotate(service_request, provider_id):
    data = service_request.to_dict()
    data['customer'] = service_request.customer.to_summary() if service_request.customer else None
    own = next((p for p in service_request.proposals if p.provider_id == provider_id), None)
    data['has_proposed'] = own is not None
    data['my_proposal_id'] = own.id if own else None
    return data


def list_opportunities(provider_id, page, limit, search=None, category=None, min_budget=None, max_budget=None):
    query = ServiceRequest.query.filter(
        ServiceRequest.status == ServiceRequestStatus.OPEN,
        ServiceRequest.customer_id != provider_id
    )
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(ServiceRequest.title.ilike(pattern), ServiceRequest.description.ilike(pattern)))
    if category:
        query = query.filter(ServiceRequest.category == map_category(category))
    if min_budget is not None:
        query = query.filter(ServiceRequest.budget_max >= min_budget)
    if max_budget is not None:
        query = query.filter(ServiceRequest.budget_min <= max_budget)
    if min_budget is not None and max_budget is not None and min_budget > max_budget:
        raise ValidationError('min_budget cannot exceed max_budget')

    requests, pagination = paginate_query(query.order_by(ServiceRequest.created_at.desc()), page, limit)
    return [_annotate(r, provider_id) for r in requests], pagination


def get_opportunity(provider_id, request_id):
    service_request = db.session.get(ServiceRequest, require_uuid(request_id, 'service request id'))
    if service_request is None:
        raise NotFoundError('Service request not found')
    if service_request.status != ServiceRequestStatus.OPEN:
        own = Proposal.query.filter_by(service_request_id=service_request.id, provider_id=provider_id).first()
        if own is None:
            raise NotFoundError('Service request is no longer open')
    return _annotate(service_request, provider_id)
