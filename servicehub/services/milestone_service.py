"""
Milestone plans and per-milestone work flow

A plan is edited freely until both parties approve it; the second approval
locks the plan and every milestone becomes LOCKED. Funded milestones then move
IN_PROGRESS -> SUBMITTED -> APPROVED/REJECTED -> PAID.
"""
import logging
from datetime import datetime

from servicehub.errors import ValidationError
from servicehub.lifecycle import (DisputeStatus, MilestoneStatus, ProjectStatus, can_provider_move_milestone,
                                  normalize_milestones, validate_milestone_total)
from servicehub.models import Dispute, Milestone, db
from servicehub.permissions import require_milestone, require_project
from servicehub.services.notification_service import notify
from servicehub.utils import atomic, parse_date

logger = logging.getLogger(__name__)

APPROVAL_FLAGS = {'customer': 'company_approved', 'provider': 'provider_approved'}


def _counterparty_id(project, side):
    return project.provider_id if side == 'customer' else project.customer_id


def _ensure_not_disputed(project):
    """An open dispute freezes the plan; it may point at one of its milestones"""
    open_dispute = Dispute.query.filter(
        Dispute.project_id == project.id,
        Dispute.status.in_(DisputeStatus.ACTIVE)
    ).first()
    if project.status == ProjectStatus.DISPUTED or open_dispute is not None:
        raise ValidationError('Milestones cannot be changed while the project is under dispute')


def get_plan(user_id, project_id, side):
    project = require_project(project_id, user_id, side)
    data = project.milestone_flags()
    data['project_id'] = project.id
    data['bid_amount'] = project.bid_amount
    data['milestones'] = [m.to_dict() for m in project.milestones]
    return data


def replace_plan(user_id, project_id, side, raw_milestones):
    """Replace the whole plan; both approvals start over"""
    project = require_project(project_id, user_id, side)
    if project.milestones_locked:
        raise ValidationError('Project milestones are locked and cannot be edited')
    if project.status not in ProjectStatus.ACTIVE:
        raise ValidationError(f"Milestones cannot be edited on a {project.status.lower()} project")
    _ensure_not_disputed(project)

    milestones = normalize_milestones(raw_milestones, parse_date)
    if not milestones:
        raise ValidationError('At least one milestone is required')
    if project.bid_amount:
        validate_milestone_total(milestones, project.bid_amount)

    with atomic():
        Milestone.query.filter_by(project_id=project.id).delete(synchronize_session=False)
        for item in milestones:
            db.session.add(Milestone(
                project_id=project.id,
                title=item['title'],
                description=item['description'],
                amount=item['amount'],
                due_date=parse_date(item['due_date']),
                order=item['sequence'],
                status=MilestoneStatus.DRAFT
            ))
        project.company_approved = False
        project.provider_approved = False
        project.milestones_approved_at = None
        notify(_counterparty_id(project, side), 'milestone', 'Milestone plan updated',
               f"The milestone plan for '{project.title}' changed and needs your approval.",
               {'project_id': project.id})

    db.session.expire(project)
    return get_plan(user_id, project.id, side)


def approve_plan(user_id, project_id, side):
    """Record one side's approval; the second approval locks the plan"""
    project = require_project(project_id, user_id, side)
    if project.milestones_locked:
        raise ValidationError('Project milestones are already locked')
    if not project.milestones:
        raise ValidationError('No milestones to approve')
    _ensure_not_disputed(project)

    with atomic():
        setattr(project, APPROVAL_FLAGS[side], True)
        if project.company_approved and project.provider_approved:
            project.milestones_locked = True
            project.milestones_approved_at = datetime.utcnow()
            for milestone in project.milestones:
                milestone.status = MilestoneStatus.LOCKED
            for party_id in (project.customer_id, project.provider_id):
                notify(party_id, 'milestone', 'Milestones locked',
                       f"Both parties approved the milestones for '{project.title}'. Work can be funded.",
                       {'project_id': project.id})
        else:
            notify(_counterparty_id(project, side), 'milestone', 'Milestone plan approved',
                   f"The other party approved the milestones for '{project.title}'. Your approval is needed.",
                   {'project_id': project.id})

    if project.milestones_locked:
        logger.info(f"Milestones locked for project {project.id}")
    return get_plan(user_id, project.id, side)


def _complete_project_if_done(project):
    """All milestones paid -> project completed"""
    if project.milestones and all(m.status == MilestoneStatus.PAID for m in project.milestones):
        project.status = ProjectStatus.COMPLETED
        project.completed_at = datetime.utcnow()
        profile = project.provider.provider_profile if project.provider else None
        if profile is not None:
            profile.total_projects = (profile.total_projects or 0) + 1
        notify(project.customer_id, 'project', 'Project completed',
               f"All milestones of '{project.title}' are paid. You can now leave a review.",
               {'project_id': project.id})
        return True
    return False


def approve_milestone(customer_id, milestone_id):
    milestone = require_milestone(milestone_id, customer_id, 'customer')
    if milestone.status != MilestoneStatus.SUBMITTED:
        raise ValidationError('Only submitted milestones can be approved')

    with atomic():
        milestone.status = MilestoneStatus.APPROVED
        milestone.approved_at = datetime.utcnow()
        milestone.approved_by = customer_id
        milestone.rejection_reason = None
        notify(milestone.project.provider_id, 'milestone', 'Milestone approved',
               f"'{milestone.title}' was approved.",
               {'project_id': milestone.project_id, 'milestone_id': milestone.id})
    return milestone


def reject_milestone(customer_id, milestone_id, reason):
    milestone = require_milestone(milestone_id, customer_id, 'customer')
    if milestone.status != MilestoneStatus.SUBMITTED:
        raise ValidationError('Only submitted milestones can be rejected')
    if not reason or not str(reason).strip():
        raise ValidationError('A rejection reason is required')

    with atomic():
        milestone.status = MilestoneStatus.REJECTED
        milestone.rejection_reason = str(reason).strip()
        notify(milestone.project.provider_id, 'milestone', 'Changes requested',
               f"'{milestone.title}' needs changes: {milestone.rejection_reason}",
               {'project_id': milestone.project_id, 'milestone_id': milestone.id})
    return milestone


def mark_milestone_paid(milestone):
    """Shared by direct payment and confirmed bank transfers; caller commits"""
    milestone.status = MilestoneStatus.PAID
    milestone.is_paid = True
    milestone.paid_at = datetime.utcnow()
    _complete_project_if_done(milestone.project)


def pay_milestone(customer_id, milestone_id):
    milestone = require_milestone(milestone_id, customer_id, 'customer')
    if milestone.status != MilestoneStatus.APPROVED:
        raise ValidationError('Only approved milestones can be paid')

    with atomic():
        mark_milestone_paid(milestone)
        notify(milestone.project.provider_id, 'payment', 'Milestone paid',
               f"Payment of RM{milestone.amount:.2f} for '{milestone.title}' was made.",
               {'project_id': milestone.project_id, 'milestone_id': milestone.id})
    return milestone


def update_milestone_status(provider_id, milestone_id, status, deliverables=None, note=None):
    """Provider starts or submits work on a milestone"""
    milestone = require_milestone(milestone_id, provider_id, 'provider')
    if milestone.project.status != ProjectStatus.IN_PROGRESS:
        raise ValidationError('Project is not in progress')
    if not can_provider_move_milestone(milestone.status, status):
        raise ValidationError(f"Cannot change milestone from {milestone.status} to {status}")

    with atomic():
        milestone.status = status
        if status == MilestoneStatus.SUBMITTED:
            milestone.submitted_at = datetime.utcnow()
            if deliverables is not None:
                milestone.deliverables = deliverables
            milestone.submission_note = note
            title = 'Milestone submitted'
            content = f"'{milestone.title}' was submitted for your review."
        else:
            title = 'Milestone in progress'
            content = f"Work on '{milestone.title}' has started."
        notify(milestone.project.customer_id, 'milestone', title, content,
               {'project_id': milestone.project_id, 'milestone_id': milestone.id, 'status': status})
    return milestone
