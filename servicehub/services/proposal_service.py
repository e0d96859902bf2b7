"""Provider proposals against open service requests"""
import logging

from servicehub.errors import ConflictError, NotFoundError, ValidationError
from servicehub.lifecycle import (ProposalStatus, ServiceRequestStatus, normalize_milestones,
                                  validate_bid_in_budget, validate_milestone_total)
from servicehub.models import Proposal, ServiceRequest, db
from servicehub.permissions import require_ownership
from servicehub.services.notification_service import notify
from servicehub.utils import atomic, paginate_query, parse_amount, parse_date, parse_text_list, require_uuid

logger = logging.getLogger(__name__)


def _parse_delivery_time(value):
    try:
        delivery_time = int(value)
    except (TypeError, ValueError):
        raise ValidationError('delivery_time must be a whole number of days')
    if delivery_time <= 0:
        raise ValidationError('delivery_time must be greater than 0')
    return delivery_time


def _checked_milestones(raw_milestones, bid_amount):
    if not raw_milestones:
        return []
    milestones = normalize_milestones(raw_milestones, parse_date)
    validate_milestone_total(milestones, bid_amount)
    return milestones


def send_proposal(provider_id, data):
    request_id = require_uuid(data.get('service_request_id'), 'service_request_id')
    bid_amount = parse_amount(data.get('bid_amount'), 'bid_amount')
    delivery_time = _parse_delivery_time(data.get('delivery_time'))
    cover_letter = (data.get('cover_letter') or '').strip()
    if not cover_letter:
        raise ValidationError('cover_letter is required')

    service_request = db.session.get(ServiceRequest, request_id)
    if service_request is None:
        raise NotFoundError('Service request not found')
    if service_request.status != ServiceRequestStatus.OPEN:
        raise ValidationError('Service request is not open for proposals')
    if service_request.customer_id == provider_id:
        raise ValidationError('You cannot send a proposal to your own service request')

    existing = Proposal.query.filter_by(service_request_id=request_id, provider_id=provider_id).first()
    if existing:
        raise ConflictError('You have already submitted a proposal for this service request')

    validate_bid_in_budget(bid_amount, service_request.budget_min, service_request.budget_max)
    milestones = _checked_milestones(data.get('milestones'), bid_amount)

    with atomic():
        proposal = Proposal(
            service_request_id=request_id,
            provider_id=provider_id,
            cover_letter=cover_letter,
            bid_amount=bid_amount,
            delivery_time=delivery_time,
            proposed_milestones=milestones,
            attachments=parse_text_list(data.get('attachments')),
            status=ProposalStatus.PENDING
        )
        db.session.add(proposal)
        notify(service_request.customer_id, 'proposal', 'New proposal received',
               f"A provider bid RM{bid_amount:.2f} on '{service_request.title}'.",
               {'service_request_id': request_id})

    logger.info(f"Proposal {proposal.id} sent by {provider_id} for request {request_id}")
    return proposal


def list_provider_proposals(provider_id, page, limit, status=None):
    query = Proposal.query.filter_by(provider_id=provider_id)
    if status:
        if status not in ProposalStatus.ALL:
            raise ValidationError('Invalid status filter')
        query = query.filter_by(status=status)
    proposals, pagination = paginate_query(query.order_by(Proposal.created_at.desc()), page, limit)
    return [p.to_dict(include_request=True) for p in proposals], pagination


def get_provider_proposal(provider_id, proposal_id):
    return require_ownership(Proposal, proposal_id, provider_id, 'provider_id', label='Proposal')


def update_proposal(provider_id, proposal_id, data):
    proposal = get_provider_proposal(provider_id, proposal_id)
    if proposal.status != ProposalStatus.PENDING:
        raise ValidationError('Only pending proposals can be updated')

    service_request = proposal.service_request
    bid_amount = proposal.bid_amount
    if 'bid_amount' in data:
        bid_amount = parse_amount(data['bid_amount'], 'bid_amount')
        validate_bid_in_budget(bid_amount, service_request.budget_min, service_request.budget_max)

    if 'milestones' in data:
        milestones = _checked_milestones(data['milestones'], bid_amount)
    else:
        milestones = list(proposal.proposed_milestones or [])
        if milestones:
            validate_milestone_total(milestones, bid_amount)

    with atomic():
        proposal.bid_amount = bid_amount
        proposal.proposed_milestones = milestones
        if 'delivery_time' in data:
            proposal.delivery_time = _parse_delivery_time(data['delivery_time'])
        if 'cover_letter' in data:
            cover_letter = (data['cover_letter'] or '').strip()
            if not cover_letter:
                raise ValidationError('cover_letter cannot be empty')
            proposal.cover_letter = cover_letter
        if 'attachments' in data:
            proposal.attachments = parse_text_list(data['attachments'])
    return proposal


def delete_proposal(provider_id, proposal_id):
    proposal = get_provider_proposal(provider_id, proposal_id)
    if proposal.status == ProposalStatus.ACCEPTED:
        raise ValidationError('An accepted proposal cannot be withdrawn')
    with atomic():
        db.session.delete(proposal)
