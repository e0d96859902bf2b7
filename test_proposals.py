#!/usr/bin/env python3
"""Test posting requests, sending proposals and accepting one into a project"""
from servicehub.lifecycle import MilestoneStatus, ProjectStatus, ProposalStatus, Role, ServiceRequestStatus
from servicehub.models import Notification, Proposal, ServiceRequest, db


def _proposal_body(service_request, bid=10000, milestones=None):
    return {
        'service_request_id': service_request.id,
        'bid_amount': bid,
        'delivery_time': 30,
        'cover_letter': 'I have shipped several storefronts.',
        'milestones': milestones if milestones is not None else [
            {'title': 'Design', 'amount': 4000, 'sequence': 1},
            {'title': 'Build', 'amount': 6000, 'sequence': 2}
        ]
    }


def test_company_posts_service_request(client, company, headers):
    response = client.post('/api/company/projects', headers=headers(company), json={
        'title': 'Mobile loyalty app',
        'description': 'Points and rewards for our outlets',
        'category': 'Mobile Development',
        'budget_min': 5000,
        'budget_max': 9000,
        'skills': 'Flutter, Firebase'
    })
    body = response.get_json()
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {body}"
    assert body['data']['category'] == 'MOBILE_APP_DEVELOPMENT', "Display categories map to codes"
    assert body['data']['skills'] == ['Flutter', 'Firebase']
    assert body['data']['status'] == ServiceRequestStatus.OPEN


def test_budget_must_be_ordered(client, company, headers):
    response = client.post('/api/company/projects', headers=headers(company), json={
        'title': 'Bad budget', 'description': 'x', 'category': 'DevOps', 'budget_min': 9000, 'budget_max': 5000
    })
    assert response.status_code == 400


def test_provider_sees_open_opportunities(client, provider, service_request, headers):
    response = client.get('/api/provider/opportunities', headers=headers(provider))
    assert response.status_code == 200
    ids = [item['id'] for item in response.get_json()['data']['items']]
    assert service_request.id in ids, "Open requests should be listed as opportunities"


def test_send_proposal_within_tolerance(client, provider, service_request, headers):
    """Milestones totalling RM10,150 are accepted against a RM10,000 bid"""
    body = _proposal_body(service_request, milestones=[
        {'title': 'Design', 'amount': 4000},
        {'title': 'Build', 'amount': 6150}
    ])
    response = client.post('/api/provider/proposals', headers=headers(provider), json=body)
    assert response.status_code == 201, f"Proposal rejected: {response.get_json()}"
    data = response.get_json()['data']
    assert data['status'] == ProposalStatus.PENDING
    assert [m['sequence'] for m in data['milestones']] == [1, 2]

    notification = Notification.query.filter_by(user_id=service_request.customer_id, type='proposal').first()
    assert notification is not None, "The company should be notified of a new proposal"


def test_send_proposal_outside_tolerance(client, provider, service_request, headers):
    """Milestones totalling RM10,500 against a RM10,000 bid are refused"""
    body = _proposal_body(service_request, milestones=[
        {'title': 'Design', 'amount': 4000},
        {'title': 'Build', 'amount': 6500}
    ])
    response = client.post('/api/provider/proposals', headers=headers(provider), json=body)
    assert response.status_code == 400
    assert Proposal.query.count() == 0


def test_duplicate_and_out_of_budget_proposals(client, provider, service_request, headers):
    first = client.post('/api/provider/proposals', headers=headers(provider), json=_proposal_body(service_request))
    assert first.status_code == 201

    second = client.post('/api/provider/proposals', headers=headers(provider), json=_proposal_body(service_request))
    assert second.status_code == 400
    assert 'already submitted' in second.get_json()['message']


def test_bid_outside_budget(client, provider, service_request, headers):
    body = _proposal_body(service_request, bid=15000, milestones=[])
    response = client.post('/api/provider/proposals', headers=headers(provider), json=body)
    assert response.status_code == 400


def test_accept_proposal_creates_project(client, company, provider, make_user, service_request, headers):
    """Acceptance creates the project, matches the request and rejects the other bids"""
    rival = make_user(Role.PROVIDER, name='Rival Studio')
    mine = client.post('/api/provider/proposals', headers=headers(provider), json=_proposal_body(service_request))
    theirs = client.post('/api/provider/proposals', headers=headers(rival),
                         json=_proposal_body(service_request, bid=9000, milestones=[]))
    proposal_id = mine.get_json()['data']['id']
    rival_id = theirs.get_json()['data']['id']

    response = client.post(f"/api/company/project-requests/{proposal_id}/accept", headers=headers(company))
    body = response.get_json()
    assert response.status_code == 200, f"Accept failed: {body}"

    project = body['data']
    assert project['status'] == ProjectStatus.IN_PROGRESS
    assert project['provider_id'] == provider.id
    assert project['bid_amount'] == 10000
    assert [m['status'] for m in project['milestones']] == [MilestoneStatus.DRAFT, MilestoneStatus.DRAFT]
    assert project['milestones_locked'] is False

    db.session.expire_all()
    assert db.session.get(ServiceRequest, service_request.id).status == ServiceRequestStatus.MATCHED
    assert db.session.get(Proposal, proposal_id).status == ProposalStatus.ACCEPTED
    assert db.session.get(Proposal, rival_id).status == ProposalStatus.REJECTED, "Other proposals are rejected"

    again = client.post(f"/api/company/project-requests/{proposal_id}/accept", headers=headers(company))
    assert again.status_code == 400


def test_other_company_cannot_accept(client, provider, make_user, service_request, headers):
    outsider = make_user(Role.CUSTOMER)
    proposal = client.post('/api/provider/proposals', headers=headers(provider),
                           json=_proposal_body(service_request)).get_json()['data']
    response = client.post(f"/api/company/project-requests/{proposal['id']}/accept", headers=headers(outsider))
    assert response.status_code == 404, "Foreign proposals are reported as not found"


def test_reject_proposal_records_reason(client, company, provider, service_request, headers):
    proposal = client.post('/api/provider/proposals', headers=headers(provider),
                           json=_proposal_body(service_request)).get_json()['data']
    response = client.post(f"/api/company/project-requests/{proposal['id']}/reject",
                           headers=headers(company), json={'reason': 'Over our timeline'})
    data = response.get_json()['data']
    assert data['status'] == ProposalStatus.REJECTED
    assert data['rejection_reason'] == 'Over our timeline'
