"""Shared fixtures: an app on an in-memory database plus ready-made users and projects"""
import pytest

from servicehub import create_app
from servicehub import auth as auth_module
from servicehub.auth import create_token, hash_password
from servicehub.config import TestingConfig
from servicehub.lifecycle import KycStatus, MilestoneStatus, ProjectStatus, Role, ServiceRequestStatus
from servicehub.models import CustomerProfile, Milestone, Project, ProviderProfile, ServiceRequest, User, db

PASSWORD = 'Secret@123'


@pytest.fixture
def app(tmp_path):
    class _Config(TestingConfig):
        UPLOAD_FOLDER = str(tmp_path / 'uploads')
        LOG_DIR = str(tmp_path / 'logs')

    auth_module.login_attempts.clear()
    app = create_app(_Config)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
    auth_module.login_attempts.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(role=Role.CUSTOMER, name=None, email=None, bank_details=False, **fields):
        counter['n'] += 1
        user = User(
            email=email or f"{role.lower()}{counter['n']}@example.com",
            name=name or f"{role.title()} {counter['n']}",
            password_hash=hash_password(PASSWORD),
            roles=[role],
            kyc_status=fields.pop('kyc_status', KycStatus.ACTIVE),
            is_verified=fields.pop('is_verified', True)
        )
        db.session.add(user)
        db.session.flush()
        if role == Role.CUSTOMER:
            db.session.add(CustomerProfile(user_id=user.id, company_name=f"{user.name} Sdn Bhd"))
        elif role == Role.PROVIDER:
            profile = ProviderProfile(user_id=user.id, skills=['Python'], **fields)
            if bank_details:
                profile.bank_name = 'Maybank'
                profile.bank_account_number = '112233445566'
                profile.bank_account_name = user.name
            db.session.add(profile)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def company(make_user):
    return make_user(Role.CUSTOMER, name='Acme Retail')


@pytest.fixture
def provider(make_user):
    return make_user(Role.PROVIDER, name='Aisyah Rahman', bank_details=True)


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN, name='Platform Admin')


@pytest.fixture
def headers(app):
    """Authorization header for a user"""
    def _headers(user):
        return {'Authorization': f"Bearer {create_token(user)}"}
    return _headers


@pytest.fixture
def service_request(company):
    service_request = ServiceRequest(
        customer_id=company.id,
        title='Online store revamp',
        description='Rebuild the storefront with a faster checkout.',
        category='WEB_DEVELOPMENT',
        budget_min=8000,
        budget_max=12000,
        skills=['React'],
        status=ServiceRequestStatus.OPEN
    )
    db.session.add(service_request)
    db.session.commit()
    return service_request


@pytest.fixture
def make_project(app):
    """Project between two users; ``locked`` approves and locks the milestone plan"""
    def _make(customer, provider, amounts=(4000.0, 6000.0), locked=True, status=ProjectStatus.IN_PROGRESS):
        project = Project(
            title='Inventory dashboard',
            description='Stock levels across three outlets',
            category='WEB_DEVELOPMENT',
            customer_id=customer.id,
            provider_id=provider.id,
            bid_amount=sum(amounts),
            delivery_time=30,
            status=status,
            company_approved=locked,
            provider_approved=locked,
            milestones_locked=locked
        )
        db.session.add(project)
        db.session.flush()
        for index, amount in enumerate(amounts):
            db.session.add(Milestone(
                project_id=project.id,
                title=f"Milestone {index + 1}",
                amount=amount,
                order=index + 1,
                status=MilestoneStatus.LOCKED if locked else MilestoneStatus.DRAFT
            ))
        db.session.commit()
        return project

    return _make


@pytest.fixture
def project(make_project, company, provider):
    return make_project(company, provider)
