"""
Status codes and the rules that move projects, milestones, payments and
disputes between them.

Services call into this module instead of comparing status strings inline so
the bid tolerance, the sequence ordering and the allowed transitions live in
one place.
"""
from servicehub.errors import ValidationError


class ServiceRequestStatus:
    OPEN = 'OPEN'
    CLOSED = 'CLOSED'
    MATCHED = 'MATCHED'

    ALL = (OPEN, CLOSED, MATCHED)


class ProposalStatus:
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'

    ALL = (PENDING, ACCEPTED, REJECTED)


class ProjectStatus:
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    DISPUTED = 'DISPUTED'
    CANCELLED = 'CANCELLED'

    ALL = (IN_PROGRESS, COMPLETED, DISPUTED, CANCELLED)
    ACTIVE = (IN_PROGRESS, DISPUTED)


class MilestoneStatus:
    DRAFT = 'DRAFT'
    LOCKED = 'LOCKED'
    IN_PROGRESS = 'IN_PROGRESS'
    SUBMITTED = 'SUBMITTED'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    PAID = 'PAID'
    DISPUTED = 'DISPUTED'
    CANCELLED = 'CANCELLED'

    ALL = (DRAFT, LOCKED, IN_PROGRESS, SUBMITTED, APPROVED, REJECTED, PAID, DISPUTED, CANCELLED)
    ACTIVE = (LOCKED, IN_PROGRESS, SUBMITTED, APPROVED, REJECTED)
    DONE = (APPROVED, PAID)


class PaymentStatus:
    PENDING = 'PENDING'
    IN_PROGRESS = 'IN_PROGRESS'
    ESCROWED = 'ESCROWED'
    RELEASED = 'RELEASED'
    TRANSFERRED = 'TRANSFERRED'
    FAILED = 'FAILED'
    REFUNDED = 'REFUNDED'

    ALL = (PENDING, IN_PROGRESS, ESCROWED, RELEASED, TRANSFERRED, FAILED, REFUNDED)
    OPEN = (PENDING, IN_PROGRESS, ESCROWED)
    SETTLED = (ESCROWED, RELEASED, TRANSFERRED)


class BankTransferStatus:
    PENDING = 'PENDING'
    REQUESTED = 'REQUESTED'
    COMPLETED = 'COMPLETED'


class DisputeStatus:
    OPEN = 'OPEN'
    UNDER_REVIEW = 'UNDER_REVIEW'
    RESOLVED = 'RESOLVED'
    CLOSED = 'CLOSED'
    REJECTED = 'REJECTED'

    ALL = (OPEN, UNDER_REVIEW, RESOLVED, CLOSED, REJECTED)
    ACTIVE = (OPEN, UNDER_REVIEW)
    FINAL = (RESOLVED, CLOSED, REJECTED)


class KycDocumentStatus:
    UPLOADED = 'uploaded'
    VERIFIED = 'verified'
    REJECTED = 'rejected'

    ALL = (UPLOADED, VERIFIED, REJECTED)


class KycStatus:
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    SUSPENDED = 'suspended'
    PENDING_VERIFICATION = 'pending_verification'

    ALL = (ACTIVE, INACTIVE, SUSPENDED, PENDING_VERIFICATION)


class KycDocumentType:
    PROVIDER_ID = 'PROVIDER_ID'
    COMPANY_REG = 'COMPANY_REG'
    COMPANY_DIRECTOR_ID = 'COMPANY_DIRECTOR_ID'
    OTHER = 'OTHER'

    ALL = (PROVIDER_ID, COMPANY_REG, COMPANY_DIRECTOR_ID, OTHER)


class Role:
    ADMIN = 'ADMIN'
    CUSTOMER = 'CUSTOMER'
    PROVIDER = 'PROVIDER'


# Moves a provider may make on their own milestone
PROVIDER_MILESTONE_TRANSITIONS = {
    MilestoneStatus.IN_PROGRESS: (MilestoneStatus.LOCKED, MilestoneStatus.REJECTED),
    MilestoneStatus.SUBMITTED: (MilestoneStatus.IN_PROGRESS, MilestoneStatus.REJECTED),
}

# Status a company may set directly on its own project
COMPANY_PROJECT_STATUSES = (ProjectStatus.IN_PROGRESS, ProjectStatus.COMPLETED, ProjectStatus.CANCELLED)
PROVIDER_PROJECT_STATUSES = (ProjectStatus.COMPLETED, ProjectStatus.DISPUTED)

# Status an admin may set when resolving a dispute
ADMIN_DISPUTE_STATUSES = (DisputeStatus.UNDER_REVIEW, DisputeStatus.RESOLVED,
                          DisputeStatus.CLOSED, DisputeStatus.REJECTED)

MIN_TOLERANCE = 1.0
TOLERANCE_RATE = 0.02


def milestone_tolerance(bid_amount):
    """Allowed gap between the milestone total and the bid"""
    return max(float(bid_amount) * TOLERANCE_RATE, MIN_TOLERANCE)


def validate_milestone_total(milestones, bid_amount):
    """Raise ValidationError unless the milestone amounts add up to the bid"""
    total = round(sum(float(m['amount']) for m in milestones), 2)
    tolerance = milestone_tolerance(bid_amount)
    if abs(total - float(bid_amount)) > tolerance:
        raise ValidationError(
            f"Milestone total (RM{total:.2f}) must match the bid amount (RM{float(bid_amount):.2f}) "
            f"within RM{tolerance:.2f}"
        )
    return total


def validate_sequences(sequences):
    """Sequence numbers must start at 1 and strictly increase"""
    previous = 0
    for index, sequence in enumerate(sequences):
        if not isinstance(sequence, int) or isinstance(sequence, bool):
            raise ValidationError(f"Milestone {index + 1}: sequence must be an integer")
        if index == 0 and sequence != 1:
            raise ValidationError('Milestone sequence must start at 1')
        if sequence <= previous:
            raise ValidationError('Milestone sequence numbers must be strictly increasing')
        previous = sequence


def normalize_milestones(raw_milestones, parse_date):
    """
    Validate a milestone plan submitted by a client and return clean dicts.

    Each item needs a title and a positive amount. Sequences are either given
    for every item or for none, in which case list order is used.
    """
    if not isinstance(raw_milestones, list):
        raise ValidationError('Milestones must be a list')

    cleaned = []
    given = [m.get('sequence') for m in raw_milestones if isinstance(m, dict)]
    if len(given) != len(raw_milestones):
        raise ValidationError('Each milestone must be an object')

    has_sequence = [s is not None for s in given]
    if any(has_sequence) and not all(has_sequence):
        raise ValidationError('Either every milestone has a sequence or none does')

    for index, item in enumerate(raw_milestones):
        title = (item.get('title') or '').strip()
        if not title:
            raise ValidationError(f"Milestone {index + 1}: title is required")
        try:
            amount = round(float(item.get('amount')), 2)
        except (TypeError, ValueError):
            raise ValidationError(f"Milestone {index + 1}: amount must be a number")
        if amount <= 0:
            raise ValidationError(f"Milestone {index + 1}: amount must be greater than 0")

        due_date = parse_date(item.get('due_date'), f"Milestone {index + 1}: due_date")
        cleaned.append({
            'title': title,
            'description': item.get('description'),
            'amount': amount,
            'due_date': due_date.isoformat() if due_date else None,
            'sequence': item.get('sequence') if all(has_sequence) else index + 1
        })

    validate_sequences([m['sequence'] for m in cleaned])
    return cleaned


def validate_bid_in_budget(bid_amount, budget_min, budget_max):
    if bid_amount < budget_min or bid_amount > budget_max:
        raise ValidationError(
            f"Bid amount must be between RM{budget_min:.2f} and RM{budget_max:.2f}"
        )


def can_provider_move_milestone(current, target):
    return current in PROVIDER_MILESTONE_TRANSITIONS.get(target, ())


def calculate_fees(amount, fee_percent):
    """Split a payment into platform fee and provider share, rounded to cents"""
    platform_fee = round(amount * fee_percent, 2)
    provider_amount = round(amount - platform_fee, 2)
    return platform_fee, provider_amount
