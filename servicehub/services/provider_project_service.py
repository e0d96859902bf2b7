"""The provider's view of the projects assigned to them"""
from datetime import datetime

from sqlalchemy import or_

from servicehub.errors import ValidationError
from servicehub.lifecycle import MilestoneStatus, PROVIDER_PROJECT_STATUSES, ProjectStatus
from servicehub.models import Milestone, Project, ProviderProfile, db
from servicehub.permissions import require_project
from servicehub.services.notification_service import notify
from servicehub.services.service_request_service import map_category
from servicehub.utils import atomic, paginate_query


def list_provider_projects(provider_id, page, limit, status=None, category=None, search=None):
    query = Project.query.filter(Project.provider_id == provider_id)
    if status:
        if status not in ProjectStatus.ALL:
            raise ValidationError('Invalid status filter')
        query = query.filter(Project.status == status)
    if category:
        query = query.filter(Project.category == map_category(category))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Project.title.ilike(pattern), Project.description.ilike(pattern)))

    projects, pagination = paginate_query(query.order_by(Project.created_at.desc()), page, limit)
    return [p.to_dict() for p in projects], pagination


def get_provider_project(provider_id, project_id):
    return require_project(project_id, provider_id, 'provider')


def update_project_status(provider_id, project_id, status):
    if status not in PROVIDER_PROJECT_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(PROVIDER_PROJECT_STATUSES)}")

    project = get_provider_project(provider_id, project_id)
    if project.status != ProjectStatus.IN_PROGRESS:
        raise ValidationError(f"Cannot change a {project.status.lower()} project")
    if status == ProjectStatus.COMPLETED:
        unfinished = [m for m in project.milestones if m.status not in MilestoneStatus.DONE]
        if unfinished:
            raise ValidationError('All milestones must be approved before completing the project')

    with atomic():
        project.status = status
        if status == ProjectStatus.COMPLETED:
            project.completed_at = datetime.utcnow()
        notify(project.customer_id, 'project', 'Project status updated',
               f"The provider marked '{project.title}' as {status}.",
               {'project_id': project.id, 'status': status})
    return project


def provider_project_stats(provider_id):
    projects = Project.query.filter_by(provider_id=provider_id).all()
    earnings = db.session.query(db.func.coalesce(db.func.sum(Milestone.amount), 0.0)) \
        .join(Project, Milestone.project_id == Project.id) \
        .filter(Project.provider_id == provider_id, Milestone.status == MilestoneStatus.PAID) \
        .scalar()

    profile = ProviderProfile.query.filter_by(user_id=provider_id).first()
    return {
        'total_projects': len(projects),
        'active_projects': sum(1 for p in projects if p.status == ProjectStatus.IN_PROGRESS),
        'completed_projects': sum(1 for p in projects if p.status == ProjectStatus.COMPLETED),
        'disputed_projects': sum(1 for p in projects if p.status == ProjectStatus.DISPUTED),
        'total_earnings': round(float(earnings or 0), 2),
        'average_rating': profile.rating if profile else 0.0
    }
