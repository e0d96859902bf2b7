"""
Database models

Every feature shares the single ``db`` handle defined here. Primary keys are
UUID strings; status columns hold the upper-case codes listed in
``servicehub.lifecycle``.
"""
import uuid
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def generate_uuid():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(30))
    roles = db.Column(db.JSON, default=list)  # ADMIN, CUSTOMER, PROVIDER
    is_verified = db.Column(db.Boolean, default=False)
    kyc_status = db.Column(db.String(30), default='inactive')  # active, inactive, suspended, pending_verification
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer_profile = db.relationship('CustomerProfile', backref='user', uselist=False, cascade='all, delete-orphan')
    provider_profile = db.relationship('ProviderProfile', backref='user', uselist=False, cascade='all, delete-orphan')

    def has_role(self, role):
        return role in (self.roles or [])

    @property
    def is_admin(self):
        return self.has_role('ADMIN')

    def to_summary(self):
        """Minimal public view used when embedding users in other payloads"""
        return {'id': self.id, 'name': self.name, 'email': self.email}

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'phone': self.phone,
            'roles': list(self.roles or []),
            'is_verified': self.is_verified,
            'kyc_status': self.kyc_status,
            'last_login_at': _iso(self.last_login_at),
            'created_at': _iso(self.created_at)
        }


class CustomerProfile(db.Model):
    """Company details for users with the CUSTOMER role"""
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), unique=True, nullable=False)
    company_name = db.Column(db.String(200))
    company_size = db.Column(db.String(50))
    industry = db.Column(db.String(100))
    website = db.Column(db.String(300))
    description = db.Column(db.Text)
    location = db.Column(db.String(200))
    logo_url = db.Column(db.String(500))
    registration_number = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'company_name': self.company_name,
            'company_size': self.company_size,
            'industry': self.industry,
            'website': self.website,
            'description': self.description,
            'location': self.location,
            'logo_url': self.logo_url,
            'registration_number': self.registration_number,
            'updated_at': _iso(self.updated_at)
        }


class ProviderProfile(db.Model):
    """Provider details, rating aggregates and payout bank account"""
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), unique=True, nullable=False)
    bio = db.Column(db.Text)
    skills = db.Column(db.JSON, default=list)
    languages = db.Column(db.JSON, default=list)
    location = db.Column(db.String(200))
    hourly_rate = db.Column(db.Float)
    years_experience = db.Column(db.Integer)
    availability = db.Column(db.String(50))  # available, busy, unavailable
    website = db.Column(db.String(300))
    rating = db.Column(db.Float, default=0.0)
    total_reviews = db.Column(db.Integer, default=0)
    total_projects = db.Column(db.Integer, default=0)
    bank_name = db.Column(db.String(100))
    bank_account_number = db.Column(db.String(50))
    bank_account_name = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    certifications = db.relationship('Certification', backref='profile', cascade='all, delete-orphan',
                                     order_by='Certification.created_at')
    portfolios = db.relationship('Portfolio', backref='profile', cascade='all, delete-orphan',
                                 order_by='Portfolio.created_at')

    @property
    def has_bank_details(self):
        return bool(self.bank_name and self.bank_account_number and self.bank_account_name)

    def masked_account_number(self):
        if not self.bank_account_number:
            return None
        return '****' + self.bank_account_number[-4:]

    def to_dict(self, include_bank=False):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'bio': self.bio,
            'skills': list(self.skills or []),
            'languages': list(self.languages or []),
            'location': self.location,
            'hourly_rate': self.hourly_rate,
            'years_experience': self.years_experience,
            'availability': self.availability,
            'website': self.website,
            'rating': self.rating,
            'total_reviews': self.total_reviews,
            'total_projects': self.total_projects,
            'certifications': [c.to_dict() for c in self.certifications],
            'portfolios': [p.to_dict() for p in self.portfolios],
            'updated_at': _iso(self.updated_at)
        }
        if include_bank:
            data['bank_details'] = {
                'bank_name': self.bank_name,
                'bank_account_number': self.masked_account_number(),
                'bank_account_name': self.bank_account_name
            }
        return data


class Certification(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    profile_id = db.Column(db.String(36), db.ForeignKey('provider_profile.id'), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    issuer = db.Column(db.String(200))
    issued_date = db.Column(db.DateTime)
    credential_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'issuer': self.issuer,
            'issued_date': _iso(self.issued_date),
            'credential_url': self.credential_url
        }


class Portfolio(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    profile_id = db.Column(db.String(36), db.ForeignKey('provider_profile.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    image_url = db.Column(db.String(500))
    project_url = db.Column(db.String(500))
    technologies = db.Column(db.JSON, default=list)
    client = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'image_url': self.image_url,
            'project_url': self.project_url,
            'technologies': list(self.technologies or []),
            'client': self.client,
            'created_at': _iso(self.created_at)
        }


class ServiceRequest(db.Model):
    """A company's posted job before a proposal is accepted"""
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    customer_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(50), nullable=False)
    budget_min = db.Column(db.Float, nullable=False)
    budget_max = db.Column(db.Float, nullable=False)
    skills = db.Column(db.JSON, default=list)
    timeline = db.Column(db.String(100))
    priority = db.Column(db.String(20), default='medium')  # low, medium, high
    requirements = db.Column(db.JSON, default=list)
    deliverables = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), default='OPEN')  # OPEN, CLOSED, MATCHED
    project_id = db.Column(db.String(36), db.ForeignKey('project.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = db.relationship('User', foreign_keys=[customer_id])
    proposals = db.relationship('Proposal', backref='service_request', cascade='all, delete-orphan',
                                order_by='Proposal.created_at.desc()')
    milestones = db.relationship('ServiceRequestMilestone', backref='service_request',
                                 cascade='all, delete-orphan', order_by='ServiceRequestMilestone.order')

    def to_dict(self, include_proposals=False):
        data = {
            'id': self.id,
            'type': 'service_request',
            'customer_id': self.customer_id,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'budget_min': self.budget_min,
            'budget_max': self.budget_max,
            'skills': list(self.skills or []),
            'timeline': self.timeline,
            'priority': self.priority,
            'requirements': list(self.requirements or []),
            'deliverables': list(self.deliverables or []),
            'status': self.status,
            'project_id': self.project_id,
            'proposal_count': len(self.proposals),
            'milestones': [m.to_dict() for m in self.milestones],
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_proposals:
            data['proposals'] = [p.to_dict() for p in self.proposals]
        return data


class ServiceRequestMilestone(db.Model):
    """Milestone plan suggested by the company when posting a request"""
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    service_request_id = db.Column(db.String(36), db.ForeignKey('service_request.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    amount = db.Column(db.Float, nullable=False)
    due_date = db.Column(db.DateTime)
    order = db.Column(db.Integer, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'amount': self.amount,
            'due_date': _iso(self.due_date),
            'sequence': self.order
        }


class Proposal(db.Model):
    """A provider's bid against a service request"""
    __table_args__ = (db.UniqueConstraint('service_request_id', 'provider_id', name='uq_proposal_request_provider'),)

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    service_request_id = db.Column(db.String(36), db.ForeignKey('service_request.id'), nullable=False, index=True)
    provider_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    cover_letter = db.Column(db.Text, nullable=False)
    bid_amount = db.Column(db.Float, nullable=False)
    delivery_time = db.Column(db.Integer, nullable=False)  # days
    proposed_milestones = db.Column(db.JSON, default=list)
    attachments = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), default='PENDING')  # PENDING, ACCEPTED, REJECTED
    rejection_reason = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    provider = db.relationship('User', foreign_keys=[provider_id])

    def to_dict(self, include_request=False):
        data = {
            'id': self.id,
            'service_request_id': self.service_request_id,
            'provider_id': self.provider_id,
            'provider': self.provider.to_summary() if self.provider else None,
            'cover_letter': self.cover_letter,
            'bid_amount': self.bid_amount,
            'delivery_time': self.delivery_time,
            'milestones': list(self.proposed_milestones or []),
            'attachments': list(self.attachments or []),
            'status': self.status,
            'rejection_reason': self.rejection_reason,
            'submitted_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_request and self.service_request:
            req = self.service_request
            data['service_request'] = {
                'id': req.id,
                'title': req.title,
                'category': req.category,
                'budget_min': req.budget_min,
                'budget_max': req.budget_max,
                'status': req.status,
                'customer': req.customer.to_summary() if req.customer else None
            }
        return data


class Project(db.Model):
    """Work agreed between a company and a provider"""
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(50))
    customer_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    provider_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    budget_min = db.Column(db.Float)
    budget_max = db.Column(db.Float)
    bid_amount = db.Column(db.Float)  # agreed amount from the accepted proposal
    delivery_time = db.Column(db.Integer)
    skills = db.Column(db.JSON, default=list)
    timeline = db.Column(db.String(100))
    priority = db.Column(db.String(20))
    requirements = db.Column(db.JSON, default=list)
    deliverables = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), default='IN_PROGRESS')  # IN_PROGRESS, COMPLETED, DISPUTED, CANCELLED
    company_approved = db.Column(db.Boolean, default=False)
    provider_approved = db.Column(db.Boolean, default=False)
    milestones_locked = db.Column(db.Boolean, default=False)
    milestones_approved_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = db.relationship('User', foreign_keys=[customer_id])
    provider = db.relationship('User', foreign_keys=[provider_id])
    milestones = db.relationship('Milestone', backref='project', cascade='all, delete-orphan',
                                 order_by='Milestone.order')

    def progress(self):
        """Percentage of milestones that are approved or paid"""
        if not self.milestones:
            return 0
        done = sum(1 for m in self.milestones if m.status in ('APPROVED', 'PAID'))
        return round(done / len(self.milestones) * 100)

    def milestone_flags(self):
        return {
            'company_approved': self.company_approved,
            'provider_approved': self.provider_approved,
            'milestones_locked': self.milestones_locked,
            'milestones_approved_at': _iso(self.milestones_approved_at)
        }

    def to_dict(self, include_milestones=True):
        data = {
            'id': self.id,
            'type': 'project',
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'customer_id': self.customer_id,
            'provider_id': self.provider_id,
            'customer': self.customer.to_summary() if self.customer else None,
            'provider': self.provider.to_summary() if self.provider else None,
            'budget_min': self.budget_min,
            'budget_max': self.budget_max,
            'bid_amount': self.bid_amount,
            'delivery_time': self.delivery_time,
            'skills': list(self.skills or []),
            'timeline': self.timeline,
            'priority': self.priority,
            'requirements': list(self.requirements or []),
            'deliverables': list(self.deliverables or []),
            'status': self.status,
            'progress': self.progress(),
            'completed_at': _iso(self.completed_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        data.update(self.milestone_flags())
        if include_milestones:
            data['milestones'] = [m.to_dict() for m in self.milestones]
        return data


class Milestone(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    project_id = db.Column(db.String(36), db.ForeignKey('project.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    amount = db.Column(db.Float, nullable=False)
    due_date = db.Column(db.DateTime)
    order = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), default='DRAFT')  # DRAFT, LOCKED, IN_PROGRESS, SUBMITTED, APPROVED, REJECTED, PAID, DISPUTED, CANCELLED
    deliverables = db.Column(db.Text)
    submission_note = db.Column(db.Text)
    rejection_reason = db.Column(db.Text)
    funded_at = db.Column(db.DateTime)
    submitted_at = db.Column(db.DateTime)
    approved_at = db.Column(db.DateTime)
    approved_by = db.Column(db.String(36), db.ForeignKey('user.id'))
    is_paid = db.Column(db.Boolean, default=False)
    paid_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'title': self.title,
            'description': self.description,
            'amount': self.amount,
            'due_date': _iso(self.due_date),
            'sequence': self.order,
            'status': self.status,
            'deliverables': self.deliverables,
            'submission_note': self.submission_note,
            'rejection_reason': self.rejection_reason,
            'funded_at': _iso(self.funded_at),
            'submitted_at': _iso(self.submitted_at),
            'approved_at': _iso(self.approved_at),
            'approved_by': self.approved_by,
            'is_paid': self.is_paid,
            'paid_at': _iso(self.paid_at)
        }


class Payment(db.Model):
    """Escrow payment for a single milestone"""
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    project_id = db.Column(db.String(36), db.ForeignKey('project.id'), nullable=False, index=True)
    milestone_id = db.Column(db.String(36), db.ForeignKey('milestone.id'), nullable=False, index=True)
    customer_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    provider_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    platform_fee = db.Column(db.Float, default=0.0)
    provider_amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(3), default='MYR')
    status = db.Column(db.String(20), default='PENDING')  # PENDING, IN_PROGRESS, ESCROWED, RELEASED, TRANSFERRED, FAILED, REFUNDED
    payment_method = db.Column(db.String(30))
    stripe_payment_intent_id = db.Column(db.String(100), index=True)
    stripe_charge_id = db.Column(db.String(100))
    stripe_refund_id = db.Column(db.String(100))
    bank_transfer_status = db.Column(db.String(20))  # PENDING, REQUESTED, COMPLETED
    bank_transfer_ref = db.Column(db.String(100))
    transfer_proof_path = db.Column(db.String(500))
    failure_reason = db.Column(db.Text)
    escrowed_at = db.Column(db.DateTime)
    released_at = db.Column(db.DateTime)
    withdrawal_requested_at = db.Column(db.DateTime)
    transferred_at = db.Column(db.DateTime)
    refunded_at = db.Column(db.DateTime)
    failed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship('Project')
    milestone = db.relationship('Milestone')
    customer = db.relationship('User', foreign_keys=[customer_id])
    provider = db.relationship('User', foreign_keys=[provider_id])

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'project_title': self.project.title if self.project else None,
            'milestone_id': self.milestone_id,
            'milestone_title': self.milestone.title if self.milestone else None,
            'customer': self.customer.to_summary() if self.customer else None,
            'provider': self.provider.to_summary() if self.provider else None,
            'amount': self.amount,
            'platform_fee': self.platform_fee,
            'provider_amount': self.provider_amount,
            'currency': self.currency,
            'status': self.status,
            'payment_method': self.payment_method,
            'stripe_payment_intent_id': self.stripe_payment_intent_id,
            'bank_transfer_status': self.bank_transfer_status,
            'bank_transfer_ref': self.bank_transfer_ref,
            'failure_reason': self.failure_reason,
            'escrowed_at': _iso(self.escrowed_at),
            'released_at': _iso(self.released_at),
            'withdrawal_requested_at': _iso(self.withdrawal_requested_at),
            'transferred_at': _iso(self.transferred_at),
            'refunded_at': _iso(self.refunded_at),
            'created_at': _iso(self.created_at)
        }


class Invoice(db.Model):
    """Invoice issued to the company once a milestone payment is escrowed"""
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    invoice_number = db.Column(db.String(50), unique=True, nullable=False)
    payment_id = db.Column(db.String(36), db.ForeignKey('payment.id'), unique=True, nullable=False)
    project_id = db.Column(db.String(36), db.ForeignKey('project.id'), nullable=False)
    customer_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    provider_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    platform_fee = db.Column(db.Float, default=0.0)
    total_amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(3), default='MYR')
    status = db.Column(db.String(20), default='paid')  # paid, refunded
    description = db.Column(db.Text)
    issued_at = db.Column(db.DateTime, default=datetime.utcnow)

    payment = db.relationship('Payment', backref=db.backref('invoice', uselist=False))

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_number': self.invoice_number,
            'payment_id': self.payment_id,
            'project_id': self.project_id,
            'amount': self.amount,
            'platform_fee': self.platform_fee,
            'total_amount': self.total_amount,
            'currency': self.currency,
            'status': self.status,
            'description': self.description,
            'issued_at': _iso(self.issued_at)
        }


class Dispute(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    project_id = db.Column(db.String(36), db.ForeignKey('project.id'), nullable=False, index=True)
    milestone_id = db.Column(db.String(36), db.ForeignKey('milestone.id'))
    payment_id = db.Column(db.String(36), db.ForeignKey('payment.id'))
    raised_by_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    reason = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    contested_amount = db.Column(db.Float)
    attachments = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), default='OPEN')  # OPEN, UNDER_REVIEW, RESOLVED, CLOSED, REJECTED
    resolution = db.Column(db.Text)
    resolved_by = db.Column(db.String(36), db.ForeignKey('user.id'))
    resolved_at = db.Column(db.DateTime)
    refund_amount = db.Column(db.Float)
    release_amount = db.Column(db.Float)
    payout_transaction_id = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship('Project')
    milestone = db.relationship('Milestone')
    payment = db.relationship('Payment')
    raised_by = db.relationship('User', foreign_keys=[raised_by_id])

    @property
    def tied_milestone_id(self):
        """Milestone under dispute, falling back to the disputed payment's milestone"""
        if self.milestone_id:
            return self.milestone_id
        if self.payment is not None:
            return self.payment.milestone_id
        return None

    def disputed_amount(self):
        if self.payment is not None:
            return self.payment.amount
        if self.contested_amount is not None:
            return self.contested_amount
        if self.milestone is not None:
            return self.milestone.amount
        return 0.0

    def to_dict(self):
        project = self.project
        return {
            'id': self.id,
            'project_id': self.project_id,
            'project': {
                'id': project.id,
                'title': project.title,
                'status': project.status,
                'customer': project.customer.to_summary() if project.customer else None,
                'provider': project.provider.to_summary() if project.provider else None
            } if project else None,
            'milestone_id': self.milestone_id,
            'milestone': self.milestone.to_dict() if self.milestone else None,
            'payment_id': self.payment_id,
            'payment': self.payment.to_dict() if self.payment else None,
            'raised_by': self.raised_by.to_summary() if self.raised_by else None,
            'reason': self.reason,
            'description': self.description,
            'contested_amount': self.contested_amount,
            'attachments': list(self.attachments or []),
            'status': self.status,
            'resolution': self.resolution,
            'resolved_by': self.resolved_by,
            'resolved_at': _iso(self.resolved_at),
            'refund_amount': self.refund_amount,
            'release_amount': self.release_amount,
            'payout_transaction_id': self.payout_transaction_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class Review(db.Model):
    __table_args__ = (db.UniqueConstraint('project_id', 'reviewer_id', name='uq_review_project_reviewer'),)

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    project_id = db.Column(db.String(36), db.ForeignKey('project.id'), nullable=False)
    reviewer_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    recipient_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text)
    communication_rating = db.Column(db.Integer)
    quality_rating = db.Column(db.Integer)
    timeliness_rating = db.Column(db.Integer)
    professionalism_rating = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship('Project')
    reviewer = db.relationship('User', foreign_keys=[reviewer_id])
    recipient = db.relationship('User', foreign_keys=[recipient_id])
    replies = db.relationship('ReviewReply', backref='review', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'project_id': self.project_id,
            'project_title': self.project.title if self.project else None,
            'reviewer': self.reviewer.to_summary() if self.reviewer else None,
            'recipient': self.recipient.to_summary() if self.recipient else None,
            'rating': self.rating,
            'comment': self.comment,
            'communication_rating': self.communication_rating,
            'quality_rating': self.quality_rating,
            'timeliness_rating': self.timeliness_rating,
            'professionalism_rating': self.professionalism_rating,
            'replies': [r.to_dict() for r in self.replies],
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class ReviewReply(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    review_id = db.Column(db.String(36), db.ForeignKey('review.id'), unique=True, nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'review_id': self.review_id,
            'user_id': self.user_id,
            'content': self.content,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class Notification(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False)  # proposal, milestone, payment, dispute, review, message, kyc, system
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text)
    meta = db.Column('metadata', db.JSON)
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'content': self.content,
            'metadata': self.meta or {},
            'is_read': self.is_read,
            'read_at': _iso(self.read_at),
            'created_at': _iso(self.created_at)
        }


class Message(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    sender_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    receiver_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    project_id = db.Column(db.String(36), db.ForeignKey('project.id'))
    content = db.Column(db.Text)
    message_type = db.Column(db.String(10), default='text')  # text, file
    attachments = db.Column(db.JSON, default=list)
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    sender = db.relationship('User', foreign_keys=[sender_id])
    receiver = db.relationship('User', foreign_keys=[receiver_id])

    def to_dict(self):
        return {
            'id': self.id,
            'sender': self.sender.to_summary() if self.sender else None,
            'receiver': self.receiver.to_summary() if self.receiver else None,
            'project_id': self.project_id,
            'content': self.content,
            'message_type': self.message_type,
            'attachments': list(self.attachments or []),
            'is_read': self.is_read,
            'read_at': _iso(self.read_at),
            'created_at': _iso(self.created_at)
        }


class KycDocument(db.Model):
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('user.id'), nullable=False, index=True)
    type = db.Column(db.String(30), nullable=False)  # PROVIDER_ID, COMPANY_REG, COMPANY_DIRECTOR_ID, OTHER
    file_url = db.Column(db.String(500), nullable=False)
    file_name = db.Column(db.String(255))
    mime_type = db.Column(db.String(100))
    file_size = db.Column(db.Integer)
    status = db.Column(db.String(20), default='uploaded')  # uploaded, verified, rejected
    review_notes = db.Column(db.Text)
    reviewed_by = db.Column(db.String(36), db.ForeignKey('user.id'))
    reviewed_at = db.Column(db.DateTime)
    uploaded_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', foreign_keys=[user_id])

    def to_dict(self, include_user=False):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'file_url': self.file_url,
            'file_name': self.file_name,
            'mime_type': self.mime_type,
            'file_size': self.file_size,
            'status': self.status,
            'review_notes': self.review_notes,
            'reviewed_by': self.reviewed_by,
            'reviewed_at': _iso(self.reviewed_at),
            'uploaded_at': _iso(self.uploaded_at)
        }
        if include_user and self.user:
            data['user'] = {
                'id': self.user.id,
                'name': self.user.name,
                'email': self.user.email,
                'roles': list(self.user.roles or []),
                'kyc_status': self.user.kyc_status
            }
        return data


class AuditLog(db.Model):
    """Audit trail for authentication, admin and financial events"""
    id = db.Column(db.Integer, primary_key=True)
    event_category = db.Column(db.String(30), nullable=False)  # authentication, admin, financial, system
    event_type = db.Column(db.String(50), nullable=False)
    severity = db.Column(db.String(10), default='low')  # low, medium, high, critical
    user_id = db.Column(db.String(36))
    user_email = db.Column(db.String(120))
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    action = db.Column(db.String(255), nullable=False)
    resource_type = db.Column(db.String(50))
    resource_id = db.Column(db.String(36))
    status = db.Column(db.String(20), default='success')  # success, failure, blocked
    message = db.Column(db.Text)
    details = db.Column(db.Text)  # JSON string
    request_method = db.Column(db.String(10))
    request_path = db.Column(db.String(500))
    forwarded = db.Column(db.Boolean, default=False)
    forwarded_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'event_category': self.event_category,
            'event_type': self.event_type,
            'severity': self.severity,
            'user_id': self.user_id,
            'user_email': self.user_email,
            'ip_address': self.ip_address,
            'action': self.action,
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
            'status': self.status,
            'message': self.message,
            'details': self.details,
            'request_method': self.request_method,
            'request_path': self.request_path,
            'created_at': _iso(self.created_at)
        }
