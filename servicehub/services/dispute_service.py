"""
Disputes raised on projects and their resolution by admins

Every resolution writes the dispute and its project/milestone side effects in
one transaction.
"""
import logging
import time
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import aliased

from servicehub.audit import audit_logger
from servicehub.errors import ConflictError, NotFoundError, ValidationError
from servicehub.lifecycle import ADMIN_DISPUTE_STATUSES, DisputeStatus, MilestoneStatus, ProjectStatus
from servicehub.models import Dispute, Milestone, Payment, Project, User, db
from servicehub.permissions import require_project
from servicehub.services.notification_service import notify, send_emails
from servicehub.storage import discard_on_error, save_upload
from servicehub.utils import atomic, parse_amount, require_uuid

logger = logging.getLogger(__name__)

REDO_NOTE = 'Milestone returned to IN_PROGRESS for resubmission. Provider can now edit and resubmit.'


def _other_party(project, user_id):
    return project.provider_id if user_id == project.customer_id else project.customer_id


def raise_dispute(user_id, data, attachment=None):
    project = require_project(data.get('project_id'), user_id, 'either')
    reason = (data.get('reason') or '').strip()
    description = (data.get('description') or '').strip()
    if not reason:
        raise ValidationError('Reason is required')
    if not description:
        raise ValidationError('Description is required')
    if project.status in (ProjectStatus.COMPLETED, ProjectStatus.CANCELLED):
        raise ValidationError(f"Cannot dispute a {project.status.lower()} project")

    milestone = None
    if data.get('milestone_id'):
        milestone = db.session.get(Milestone, require_uuid(data['milestone_id'], 'milestone_id'))
        if milestone is None or milestone.project_id != project.id:
            raise ValidationError('Milestone does not belong to this project')

    payment = None
    if data.get('payment_id'):
        payment = db.session.get(Payment, require_uuid(data['payment_id'], 'payment_id'))
        if payment is None or payment.project_id != project.id:
            raise ValidationError('Payment does not belong to this project')
        if milestone is None:
            milestone = payment.milestone

    contested_amount = parse_amount(data.get('contested_amount'), 'contested_amount', required=False)

    active = Dispute.query.filter(
        Dispute.project_id == project.id,
        Dispute.milestone_id == (milestone.id if milestone else None),
        Dispute.status.in_(DisputeStatus.ACTIVE)
    ).first()
    if active:
        raise ConflictError('An active dispute already exists for this project')

    attachments = []
    if attachment is not None and attachment.filename:
        attachments.append(save_upload(attachment, 'disputes', project.id)['file_url'])

    with discard_on_error(attachments), atomic():
        dispute = Dispute(
            project_id=project.id,
            milestone_id=milestone.id if milestone else None,
            payment_id=payment.id if payment else None,
            raised_by_id=user_id,
            reason=reason,
            description=description,
            contested_amount=contested_amount,
            attachments=attachments,
            status=DisputeStatus.OPEN
        )
        db.session.add(dispute)
        project.status = ProjectStatus.DISPUTED
        if milestone is not None:
            milestone.status = MilestoneStatus.DISPUTED
        notification = notify(_other_party(project, user_id), 'dispute', 'Dispute opened',
                              f"A dispute was raised on '{project.title}': {reason}",
                              {'project_id': project.id})

    send_emails([notification])
    logger.info(f"Dispute {dispute.id} raised on project {project.id} by {user_id}")
    return dispute


def get_latest_project_dispute(user_id, project_id):
    project = require_project(project_id, user_id, 'either')
    dispute = Dispute.query.filter_by(project_id=project.id).order_by(Dispute.created_at.desc()).first()
    if dispute is None:
        raise NotFoundError('No dispute found for this project')
    return dispute


def list_project_disputes(user_id, project_id):
    project = require_project(project_id, user_id, 'either')
    return Dispute.query.filter_by(project_id=project.id).order_by(Dispute.created_at.desc()).all()


def update_own_dispute(user_id, dispute_id, data, attachment=None):
    dispute = get_dispute(dispute_id)
    if dispute.raised_by_id != user_id:
        raise NotFoundError("Dispute not found or you don't have permission")
    if dispute.status not in DisputeStatus.ACTIVE:
        raise ValidationError('Only open disputes can be updated')

    contested_amount = None
    if data.get('contested_amount') is not None:
        contested_amount = parse_amount(data['contested_amount'], 'contested_amount')
    added = []
    if attachment is not None and attachment.filename:
        added.append(save_upload(attachment, 'disputes', dispute.project_id)['file_url'])

    with discard_on_error(added), atomic():
        if data.get('description'):
            dispute.description = data['description'].strip()
        if contested_amount is not None:
            dispute.contested_amount = contested_amount
        if added:
            dispute.attachments = list(dispute.attachments or []) + added
    return dispute


def get_dispute(dispute_id):
    dispute = db.session.get(Dispute, require_uuid(dispute_id, 'dispute id'))
    if dispute is None:
        raise NotFoundError('Dispute not found')
    return dispute


def list_disputes(status=None, search=None):
    """Admin list with a case-insensitive search across parties and text"""
    query = Dispute.query.join(Project, Dispute.project_id == Project.id)
    if status and status.lower() != 'all':
        query = query.filter(Dispute.status == status.upper())
    if search:
        pattern = f"%{search}%"
        customer = aliased(User)
        provider = aliased(User)
        raiser = aliased(User)
        query = query.join(customer, Project.customer_id == customer.id) \
            .join(provider, Project.provider_id == provider.id) \
            .join(raiser, Dispute.raised_by_id == raiser.id) \
            .filter(or_(
                Dispute.reason.ilike(pattern),
                Dispute.description.ilike(pattern),
                Project.title.ilike(pattern),
                customer.name.ilike(pattern),
                provider.name.ilike(pattern),
                raiser.name.ilike(pattern)
            ))
    return query.order_by(Dispute.created_at.desc()).all()


def dispute_stats():
    disputes = Dispute.query.all()

    def count(status):
        return sum(1 for d in disputes if d.status == status)

    return {
        'total': len(disputes),
        'open': count(DisputeStatus.OPEN),
        'under_review': count(DisputeStatus.UNDER_REVIEW),
        'resolved': count(DisputeStatus.RESOLVED),
        'closed': count(DisputeStatus.CLOSED),
        'rejected': count(DisputeStatus.REJECTED),
        'total_amount': round(sum(float(d.disputed_amount() or 0) for d in disputes), 2)
    }


def _tied_milestone(dispute):
    milestone_id = dispute.tied_milestone_id
    return db.session.get(Milestone, milestone_id) if milestone_id else None


def _apply_status_effects(dispute, status):
    """Project/milestone side effects of a resolution; runs inside the caller's transaction"""
    project = dispute.project
    milestone = _tied_milestone(dispute)

    if status == DisputeStatus.RESOLVED:
        project.status = ProjectStatus.DISPUTED
        for item in project.milestones:
            item.status = MilestoneStatus.REJECTED
        logger.warning(f"Dispute {dispute.id} resolved: rejected all {len(project.milestones)} "
                       f"milestone(s) of project {project.id}")
    elif status == DisputeStatus.CLOSED:
        project.status = ProjectStatus.DISPUTED
        if milestone is not None:
            milestone.status = MilestoneStatus.DISPUTED
    elif status == DisputeStatus.REJECTED and milestone is not None:
        milestone.status = MilestoneStatus.IN_PROGRESS
        if project.status == ProjectStatus.DISPUTED:
            project.status = ProjectStatus.IN_PROGRESS


def _set_status(dispute, status, resolution, admin):
    dispute.status = status
    dispute.resolution = resolution
    if status in DisputeStatus.FINAL:
        dispute.resolved_by = admin.id
        dispute.resolved_at = datetime.utcnow()


def _notify_parties(dispute, title, content):
    project = dispute.project
    return [notify(party_id, 'dispute', title, content, {'dispute_id': dispute.id, 'project_id': project.id})
            for party_id in (project.customer_id, project.provider_id)]


def resolve_dispute(admin, dispute_id, status, resolution=None):
    status = (status or '').upper()
    if status not in ADMIN_DISPUTE_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(ADMIN_DISPUTE_STATUSES)}")

    dispute = get_dispute(dispute_id)
    if dispute.status in DisputeStatus.FINAL:
        raise ValidationError(f"Dispute is already {dispute.status.lower()}")

    with atomic():
        _set_status(dispute, status, resolution, admin)
        _apply_status_effects(dispute, status)
        notifications = _notify_parties(dispute, f"Dispute {status.lower().replace('_', ' ')}",
                                        resolution or f"The dispute on '{dispute.project.title}' is now {status}.")

    send_emails(notifications)
    audit_logger.log_admin_action(f"Dispute set to {status}", 'dispute', dispute.id,
                                  details={'resolution': resolution, 'project_id': dispute.project_id})
    return dispute


def simulate_payout(admin, dispute_id, refund_amount=0, release_amount=0, note=None):
    """Record a split of the disputed funds and resolve the dispute"""
    refund_amount = parse_amount(refund_amount or 0, 'refund_amount', positive=False)
    release_amount = parse_amount(release_amount or 0, 'release_amount', positive=False)

    dispute = get_dispute(dispute_id)
    if dispute.status in DisputeStatus.FINAL:
        raise ValidationError(f"Dispute is already {dispute.status.lower()}")

    disputed = dispute.disputed_amount()
    if disputed and round(refund_amount + release_amount, 2) > round(float(disputed), 2):
        raise ValidationError(f"Refund and release cannot exceed the disputed amount (RM{float(disputed):.2f})")

    transaction_id = f"SIM_{int(time.time() * 1000)}"
    resolution = f"Refund: RM{refund_amount:.2f}, Release: RM{release_amount:.2f}"
    if note:
        resolution = f"{resolution}. Admin note: {note}"

    with atomic():
        _set_status(dispute, DisputeStatus.RESOLVED, resolution, admin)
        dispute.refund_amount = refund_amount
        dispute.release_amount = release_amount
        dispute.payout_transaction_id = transaction_id
        _apply_status_effects(dispute, DisputeStatus.RESOLVED)
        notifications = _notify_parties(dispute, 'Dispute resolved', resolution)

    send_emails(notifications)
    audit_logger.log_financial('dispute_payout', 'Simulated dispute payout', refund_amount + release_amount,
                               'dispute', dispute.id,
                               details={'refund': refund_amount, 'release': release_amount,
                                        'transaction_id': transaction_id},
                               user_id=admin.id)
    return {
        'payout': {
            'dispute_id': dispute.id,
            'refund_amount': refund_amount,
            'release_amount': release_amount,
            'transaction_id': transaction_id,
            'status': 'completed',
            'timestamp': datetime.utcnow().isoformat()
        },
        'dispute': dispute.to_dict()
    }


def redo_milestone(admin, dispute_id, note=None):
    """Send the disputed milestone back to the provider for rework"""
    dispute = get_dispute(dispute_id)
    if dispute.status in DisputeStatus.FINAL:
        raise ValidationError(f"Dispute is already {dispute.status.lower()}")

    milestone = _tied_milestone(dispute)
    if milestone is None:
        raise ValidationError('No milestone associated with this dispute')

    resolution = REDO_NOTE
    if note:
        resolution = f"{resolution} Admin note: {note}"

    with atomic():
        milestone.status = MilestoneStatus.IN_PROGRESS
        dispute.project.status = ProjectStatus.IN_PROGRESS
        _set_status(dispute, DisputeStatus.UNDER_REVIEW, resolution, admin)
        notify(dispute.project.provider_id, 'dispute', 'Milestone returned for rework',
               f"'{milestone.title}' is back in progress. {note or ''}".strip(),
               {'dispute_id': dispute.id, 'milestone_id': milestone.id})

    audit_logger.log_admin_action('Dispute milestone sent for redo', 'dispute', dispute.id,
                                  details={'milestone_id': milestone.id, 'note': note})
    return {'milestone': milestone.to_dict(), 'dispute': dispute.to_dict()}
