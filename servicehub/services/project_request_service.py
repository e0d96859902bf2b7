"""Company review of the proposals received on its service requests"""
import logging

from servicehub.errors import NotFoundError, ValidationError
from servicehub.lifecycle import MilestoneStatus, ProjectStatus, ProposalStatus, ServiceRequestStatus
from servicehub.models import Milestone, Project, Proposal, ServiceRequest, db
from servicehub.services.notification_service import notify
from servicehub.services.service_request_service import map_category
from servicehub.utils import atomic, paginate_query, parse_date, require_uuid

logger = logging.getLogger(__name__)


def _company_proposals_query(customer_id):
    return Proposal.query.join(ServiceRequest, Proposal.service_request_id == ServiceRequest.id) \
        .filter(ServiceRequest.customer_id == customer_id)


def list_project_requests(customer_id, page, limit, status=None, category=None, service_request_id=None):
    query = _company_proposals_query(customer_id)
    if status:
        if status not in ProposalStatus.ALL:
            raise ValidationError('Invalid status filter')
        query = query.filter(Proposal.status == status)
    if category:
        query = query.filter(ServiceRequest.category == map_category(category))
    if service_request_id:
        query = query.filter(Proposal.service_request_id == require_uuid(service_request_id, 'service_request_id'))

    proposals, pagination = paginate_query(query.order_by(Proposal.created_at.desc()), page, limit)
    return [p.to_dict(include_request=True) for p in proposals], pagination


def get_project_request(customer_id, proposal_id):
    proposal_id = require_uuid(proposal_id, 'proposal id')
    proposal = _company_proposals_query(customer_id).filter(Proposal.id == proposal_id).first()
    if proposal is None:
        raise NotFoundError("Proposal not found or you don't have permission")
    return proposal


def _milestone_plan(proposal, service_request):
    """Proposal milestones, or the request's own plan when the provider sent none"""
    if proposal.proposed_milestones:
        return [
            {
                'title': m['title'],
                'description': m.get('description'),
                'amount': m['amount'],
                'due_date': parse_date(m.get('due_date')),
                'sequence': m['sequence']
            }
            for m in proposal.proposed_milestones
        ]
    return [
        {
            'title': m.title,
            'description': m.description,
            'amount': m.amount,
            'due_date': m.due_date,
            'sequence': m.order
        }
        for m in service_request.milestones
    ]


def accept_proposal(customer_id, proposal_id):
    """
    Turn a proposal into a project.

    In one transaction: create the project with its milestones, mark the
    request MATCHED, accept this proposal, reject the other pending ones and
    notify the provider.
    """
    proposal = get_project_request(customer_id, proposal_id)
    service_request = proposal.service_request
    if proposal.status != ProposalStatus.PENDING:
        raise ValidationError(f"Proposal is already {proposal.status.lower()}")
    if service_request.status != ServiceRequestStatus.OPEN:
        raise ValidationError('Service request is no longer open')

    with atomic():
        project = Project(
            title=service_request.title,
            description=service_request.description,
            category=service_request.category,
            customer_id=service_request.customer_id,
            provider_id=proposal.provider_id,
            budget_min=service_request.budget_min,
            budget_max=service_request.budget_max,
            bid_amount=proposal.bid_amount,
            delivery_time=proposal.delivery_time,
            skills=list(service_request.skills or []),
            timeline=service_request.timeline,
            priority=service_request.priority,
            requirements=list(service_request.requirements or []),
            deliverables=list(service_request.deliverables or []),
            status=ProjectStatus.IN_PROGRESS
        )
        db.session.add(project)
        db.session.flush()

        for item in _milestone_plan(proposal, service_request):
            db.session.add(Milestone(
                project_id=project.id,
                title=item['title'],
                description=item['description'],
                amount=item['amount'],
                due_date=item['due_date'],
                order=item['sequence'],
                status=MilestoneStatus.DRAFT
            ))

        service_request.status = ServiceRequestStatus.MATCHED
        service_request.project_id = project.id
        proposal.status = ProposalStatus.ACCEPTED

        Proposal.query.filter(
            Proposal.service_request_id == service_request.id,
            Proposal.id != proposal.id,
            Proposal.status == ProposalStatus.PENDING
        ).update({'status': ProposalStatus.REJECTED}, synchronize_session=False)

        notify(proposal.provider_id, 'proposal', 'Proposal accepted',
               f"Your proposal for '{service_request.title}' was accepted. A project has been created.",
               {'proposal_id': proposal.id, 'project_id': project.id})

    logger.info(f"Proposal {proposal.id} accepted, project {project.id} created")
    return project


def reject_proposal(customer_id, proposal_id, reason=None):
    proposal = get_project_request(customer_id, proposal_id)
    if proposal.status != ProposalStatus.PENDING:
        raise ValidationError(f"Proposal is already {proposal.status.lower()}")

    message = f"Your proposal for '{proposal.service_request.title}' was not accepted."
    if reason:
        message += f" Reason: {reason}"

    with atomic():
        proposal.status = ProposalStatus.REJECTED
        proposal.rejection_reason = reason
        notify(proposal.provider_id, 'proposal', 'Proposal rejected', message,
               {'proposal_id': proposal.id})
    return proposal


def project_request_stats(customer_id):
    total_proposals = _company_proposals_query(customer_id).count()
    open_requests = ServiceRequest.query.filter_by(customer_id=customer_id,
                                                   status=ServiceRequestStatus.OPEN).count()
    matched_requests = ServiceRequest.query.filter_by(customer_id=customer_id,
                                                      status=ServiceRequestStatus.MATCHED).count()
    total_requests = ServiceRequest.query.filter_by(customer_id=customer_id).count()
    return {
        'total_proposals': total_proposals,
        'pending_proposals': _company_proposals_query(customer_id)
            .filter(Proposal.status == ProposalStatus.PENDING).count(),
        'open_requests': open_requests,
        'matched_requests': matched_requests,
        'average_proposals_per_request': round(total_proposals / total_requests, 1) if total_requests else 0
    }
