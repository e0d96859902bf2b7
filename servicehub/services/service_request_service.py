"""Company service requests and the company's view of its projects"""
import logging
from datetime import datetime

from servicehub.errors import NotFoundError, ValidationError
from servicehub.lifecycle import COMPANY_PROJECT_STATUSES, ProjectStatus, ServiceRequestStatus, normalize_milestones
from servicehub.models import Project, ServiceRequest, ServiceRequestMilestone, db
from servicehub.permissions import require_ownership
from servicehub.services.notification_service import notify
from servicehub.utils import atomic, paginate_list, parse_amount, parse_date, parse_text_list, require_uuid

logger = logging.getLogger(__name__)

CATEGORY_CODES = {
    'Mobile Development': 'MOBILE_APP_DEVELOPMENT',
    'Web Development': 'WEB_DEVELOPMENT',
    'Cloud Services': 'CLOUD_SERVICES',
    'IoT Solutions': 'IOT_SOLUTIONS',
    'Data Analytics': 'DATA_ANALYTICS',
    'Cybersecurity': 'CYBERSECURITY',
    'UI/UX Design': 'UI_UX_DESIGN',
    'DevOps': 'DEVOPS',
    'AI/ML Solutions': 'AI_ML_SOLUTIONS',
    'System Integration': 'SYSTEM_INTEGRATION',
}

PRIORITIES = ('low', 'medium', 'high')
LIST_STATUSES = (ServiceRequestStatus.OPEN, ServiceRequestStatus.CLOSED) + ProjectStatus.ALL


def map_category(category):
    return CATEGORY_CODES.get(category, category)


def _validate_budget(budget_min, budget_max):
    if budget_min >= budget_max:
        raise ValidationError('Minimum budget must be less than maximum budget')


def create_service_request(customer_id, data):
    title = (data.get('title') or '').strip()
    description = (data.get('description') or '').strip()
    category = map_category((data.get('category') or '').strip())
    if not title:
        raise ValidationError('Title is required')
    if not description:
        raise ValidationError('Description is required')
    if not category:
        raise ValidationError('Category is required')

    budget_min = parse_amount(data.get('budget_min'), 'budget_min')
    budget_max = parse_amount(data.get('budget_max'), 'budget_max')
    _validate_budget(budget_min, budget_max)

    priority = data.get('priority') or 'medium'
    if priority not in PRIORITIES:
        raise ValidationError(f"Priority must be one of: {', '.join(PRIORITIES)}")

    with atomic():
        service_request = ServiceRequest(
            customer_id=customer_id,
            title=title,
            description=description,
            category=category,
            budget_min=budget_min,
            budget_max=budget_max,
            skills=parse_text_list(data.get('skills')),
            timeline=data.get('timeline'),
            priority=priority,
            requirements=parse_text_list(data.get('requirements')),
            deliverables=parse_text_list(data.get('deliverables')),
            status=ServiceRequestStatus.OPEN
        )
        db.session.add(service_request)
        if data.get('milestones'):
            db.session.flush()
            _replace_request_milestones(service_request, data['milestones'])

    logger.info(f"Service request {service_request.id} created by {customer_id}")
    return service_request


def list_company_projects(customer_id, page, limit, status=None, category=None):
    """Open/closed service requests and projects, newest first"""
    if status and status not in LIST_STATUSES:
        raise ValidationError('Invalid status filter')

    requests_query = ServiceRequest.query.filter(
        ServiceRequest.customer_id == customer_id,
        ServiceRequest.status != ServiceRequestStatus.MATCHED
    )
    projects_query = Project.query.filter(Project.customer_id == customer_id)
    if category:
        requests_query = requests_query.filter(ServiceRequest.category == map_category(category))
        projects_query = projects_query.filter(Project.category == map_category(category))

    items = []
    if not status or status in ServiceRequestStatus.ALL:
        query = requests_query.filter(ServiceRequest.status == status) if status else requests_query
        items.extend(query.all())
    if not status or status in ProjectStatus.ALL:
        query = projects_query.filter(Project.status == status) if status else projects_query
        items.extend(query.all())

    items.sort(key=lambda item: item.created_at, reverse=True)
    page_items, pagination = paginate_list(items, page, limit)
    return [item.to_dict() for item in page_items], pagination


def get_company_project(customer_id, item_id):
    """A service request or a project owned by the company"""
    item_id = require_uuid(item_id, 'project id')
    service_request = db.session.get(ServiceRequest, item_id)
    if service_request is not None and service_request.customer_id == customer_id:
        return service_request.to_dict(include_proposals=True)
    project = db.session.get(Project, item_id)
    if project is not None and project.customer_id == customer_id:
        return project.to_dict()
    raise NotFoundError("Project not found or you don't have permission")


def update_project_details(customer_id, item_id, data):
    """Partial update of a service request (while open) or a project"""
    item_id = require_uuid(item_id, 'project id')
    target = db.session.get(ServiceRequest, item_id)
    if target is None or target.customer_id != customer_id:
        target = db.session.get(Project, item_id)
        if target is None or target.customer_id != customer_id:
            raise NotFoundError("Project not found or you don't have permission")

    if isinstance(target, ServiceRequest) and target.status != ServiceRequestStatus.OPEN:
        raise ValidationError('Only open service requests can be edited')

    with atomic():
        for field in ('title', 'description', 'timeline'):
            if field in data:
                value = (data[field] or '').strip() if isinstance(data[field], str) else data[field]
                if field in ('title', 'description') and not value:
                    raise ValidationError(f"{field.capitalize()} cannot be empty")
                setattr(target, field, value)
        if 'category' in data:
            target.category = map_category(data['category'])
        if 'priority' in data:
            if data['priority'] not in PRIORITIES:
                raise ValidationError(f"Priority must be one of: {', '.join(PRIORITIES)}")
            target.priority = data['priority']
        for field in ('skills', 'requirements', 'deliverables'):
            if field in data:
                setattr(target, field, parse_text_list(data[field]))
        if 'budget_min' in data or 'budget_max' in data:
            budget_min = parse_amount(data.get('budget_min', target.budget_min), 'budget_min')
            budget_max = parse_amount(data.get('budget_max', target.budget_max), 'budget_max')
            _validate_budget(budget_min, budget_max)
            target.budget_min = budget_min
            target.budget_max = budget_max
    return target.to_dict()


def update_project_status(customer_id, project_id, status):
    if status not in COMPANY_PROJECT_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(COMPANY_PROJECT_STATUSES)}")

    project = require_ownership(Project, project_id, customer_id, 'customer_id', label='Project')
    if project.status == ProjectStatus.DISPUTED and status == ProjectStatus.COMPLETED:
        raise ValidationError('A disputed project cannot be completed until the dispute is resolved')

    with atomic():
        project.status = status
        if status == ProjectStatus.COMPLETED:
            project.completed_at = datetime.utcnow()
        notify(project.provider_id, 'project', 'Project status updated',
               f"Project '{project.title}' is now {status}.",
               {'project_id': project.id, 'status': status})
    return project


def close_service_request(customer_id, request_id):
    service_request = require_ownership(ServiceRequest, request_id, customer_id, 'customer_id',
                                        label='Service request')
    if service_request.status != ServiceRequestStatus.OPEN:
        raise ValidationError('Only open service requests can be closed')
    with atomic():
        service_request.status = ServiceRequestStatus.CLOSED
    return service_request


def _replace_request_milestones(service_request, raw_milestones):
    milestones = normalize_milestones(raw_milestones, parse_date)
    total = round(sum(m['amount'] for m in milestones), 2)
    if milestones and not (service_request.budget_min <= total <= service_request.budget_max):
        raise ValidationError(
            f"Milestone total (RM{total:.2f}) must be within the budget range "
            f"RM{service_request.budget_min:.2f} - RM{service_request.budget_max:.2f}"
        )

    ServiceRequestMilestone.query.filter_by(service_request_id=service_request.id).delete()
    for item in milestones:
        db.session.add(ServiceRequestMilestone(
            service_request_id=service_request.id,
            title=item['title'],
            description=item['description'],
            amount=item['amount'],
            due_date=parse_date(item['due_date']),
            order=item['sequence']
        ))
    return milestones


def get_request_milestones(customer_id, request_id):
    service_request = require_ownership(ServiceRequest, request_id, customer_id, 'customer_id',
                                        label='Service request')
    return service_request


def replace_request_milestones(customer_id, request_id, raw_milestones):
    service_request = require_ownership(ServiceRequest, request_id, customer_id, 'customer_id',
                                        label='Service request')
    if service_request.status != ServiceRequestStatus.OPEN:
        raise ValidationError('Milestones can only be changed while the request is open')

    with atomic():
        _replace_request_milestones(service_request, raw_milestones)
    db.session.refresh(service_request)
    return service_request
