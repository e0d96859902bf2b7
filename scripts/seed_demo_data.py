#!/usr/bin/env python3
"""
Demo Data Seeding Script

Creates an admin, a company and a provider, one service request with a
proposal, and accepts it so a project with a milestone plan exists.
Safe to run more than once: existing demo accounts are reused.

Usage:
    python3 scripts/seed_demo_data.py
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from servicehub import create_app
from servicehub.auth import hash_password
from servicehub.lifecycle import KycStatus, ProposalStatus, Role
from servicehub.models import CustomerProfile, Proposal, ProviderProfile, ServiceRequest, User, db
from servicehub.services import project_request_service, proposal_service, service_request_service

# Colors for terminal output
GREEN = '\033[92m'
YELLOW = '\033[93m'
BLUE = '\033[94m'
RESET = '\033[0m'

DEMO_PASSWORD = os.environ.get('DEMO_PASSWORD', 'Demo@12345')


def print_header(text):
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}{text.center(60)}{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")


def print_success(text):
    print(f"{GREEN}✅ {text}{RESET}")


def print_warning(text):
    print(f"{YELLOW}⚠️  {text}{RESET}")


def get_or_create_user(email, name, roles):
    user = User.query.filter_by(email=email).first()
    if user:
        print_warning(f"{email} already exists, reusing it")
        return user

    user = User(
        email=email,
        name=name,
        password_hash=hash_password(DEMO_PASSWORD),
        roles=roles,
        is_verified=True,
        kyc_status=KycStatus.ACTIVE
    )
    db.session.add(user)
    db.session.flush()
    if Role.CUSTOMER in roles:
        db.session.add(CustomerProfile(user_id=user.id, company_name=f"{name} Sdn Bhd", industry='Retail'))
    if Role.PROVIDER in roles:
        db.session.add(ProviderProfile(
            user_id=user.id,
            bio='Full-stack developer',
            skills=['Python', 'React', 'PostgreSQL'],
            hourly_rate=120.0,
            bank_name='Maybank',
            bank_account_number='112233445566',
            bank_account_name=name
        ))
    db.session.commit()
    print_success(f"Created {email} ({', '.join(roles)})")
    return user


def seed():
    print_header("Seeding Demo Accounts")
    get_or_create_user('admin@servicehub.example.com', 'Platform Admin', [Role.ADMIN])
    company = get_or_create_user('company@servicehub.example.com', 'Acme Retail', [Role.CUSTOMER])
    provider = get_or_create_user('provider@servicehub.example.com', 'Aisyah Rahman', [Role.PROVIDER])

    print_header("Seeding Marketplace Data")
    service_request = ServiceRequest.query.filter_by(customer_id=company.id, title='Online store revamp').first()
    if service_request is None:
        service_request = service_request_service.create_service_request(company.id, {
            'title': 'Online store revamp',
            'description': 'Rebuild the storefront with a faster checkout.',
            'category': 'Web Development',
            'budget_min': 8000,
            'budget_max': 12000,
            'skills': ['React', 'Python'],
            'timeline': '2 months',
            'priority': 'high'
        })
        print_success(f"Service request {service_request.id}")

    proposal = Proposal.query.filter_by(service_request_id=service_request.id, provider_id=provider.id).first()
    if proposal is None:
        proposal = proposal_service.send_proposal(provider.id, {
            'service_request_id': service_request.id,
            'bid_amount': 10000,
            'delivery_time': 45,
            'cover_letter': 'I have rebuilt three storefronts this year.',
            'milestones': [
                {'title': 'Design', 'amount': 3000, 'sequence': 1},
                {'title': 'Build', 'amount': 5000, 'sequence': 2},
                {'title': 'Launch', 'amount': 2000, 'sequence': 3}
            ]
        })
        print_success(f"Proposal {proposal.id}")

    if proposal.status == ProposalStatus.PENDING:
        project = project_request_service.accept_proposal(company.id, proposal.id)
        print_success(f"Project {project.id} with {len(project.milestones)} milestones")

    print(f"\nDemo password for all accounts: {DEMO_PASSWORD}")


if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        seed()
