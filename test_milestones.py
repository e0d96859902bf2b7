#!/usr/bin/env python3
"""Test milestone plan approval, locking and the per-milestone work flow"""
from servicehub.lifecycle import MilestoneStatus, ProjectStatus
from servicehub.models import Milestone, Project, db


def _plan_url(side, project):
    return f"/api/{side}/projects/{project.id}/milestones"


def test_second_approval_locks_plan(client, company, provider, make_project, headers):
    """One approval is recorded, the second locks every milestone"""
    project = make_project(company, provider, locked=False)

    first = client.post(_plan_url('company', project) + '/approve', headers=headers(company))
    data = first.get_json()['data']
    assert first.status_code == 200, f"Approval failed: {first.get_json()}"
    assert data['company_approved'] is True
    assert data['milestones_locked'] is False, "One approval must not lock the plan"

    second = client.post(_plan_url('provider', project) + '/approve', headers=headers(provider))
    data = second.get_json()['data']
    assert second.get_json()['message'] == 'Milestones locked'
    assert data['milestones_locked'] is True
    assert data['milestones_approved_at'] is not None
    statuses = {m['status'] for m in data['milestones']}
    assert statuses == {MilestoneStatus.LOCKED}, f"Expected all LOCKED, got {statuses}"


def test_locked_plan_cannot_be_edited(client, company, project, headers):
    response = client.put(_plan_url('company', project), headers=headers(company), json={
        'milestones': [{'title': 'Everything', 'amount': 10000}]
    })
    assert response.status_code == 400
    assert 'locked' in response.get_json()['message']


def test_replacing_plan_resets_approvals(client, company, provider, make_project, headers):
    project = make_project(company, provider, locked=False)
    client.post(_plan_url('company', project) + '/approve', headers=headers(company))

    response = client.put(_plan_url('provider', project), headers=headers(provider), json={
        'milestones': [
            {'title': 'Discovery', 'amount': 2000},
            {'title': 'Build', 'amount': 5000},
            {'title': 'Launch', 'amount': 3000}
        ]
    })
    data = response.get_json()['data']
    assert response.status_code == 200, f"Replace failed: {response.get_json()}"
    assert data['company_approved'] is False, "Editing the plan clears earlier approvals"
    assert [m['title'] for m in data['milestones']] == ['Discovery', 'Build', 'Launch']
    assert all(m['status'] == MilestoneStatus.DRAFT for m in data['milestones'])


def test_replacement_must_match_bid(client, company, provider, make_project, headers):
    project = make_project(company, provider, locked=False)
    response = client.put(_plan_url('company', project), headers=headers(company), json={
        'milestones': [{'title': 'Everything', 'amount': 12000}]
    })
    assert response.status_code == 400


def test_disputed_plan_is_frozen(client, company, provider, make_project, headers):
    """An open dispute keeps its milestone: the plan can be neither replaced nor locked"""
    project = make_project(company, provider, locked=False)
    disputed = project.milestones[0]
    raised = client.post('/api/disputes', headers=headers(provider), json={
        'project_id': project.id,
        'milestone_id': disputed.id,
        'reason': 'Scope changed',
        'description': 'The first milestone no longer matches the brief.'
    })
    assert raised.status_code == 201, f"Raise failed: {raised.get_json()}"

    response = client.put(_plan_url('company', project), headers=headers(company), json={
        'milestones': [{'title': 'Everything', 'amount': 10000}]
    })
    assert response.status_code == 400, f"Expected 400, got {response.status_code}"
    assert 'dispute' in response.get_json()['message']

    approve = client.post(_plan_url('company', project) + '/approve', headers=headers(company))
    assert approve.status_code == 400

    db.session.expire_all()
    milestone = db.session.get(Milestone, disputed.id)
    assert milestone is not None, "The disputed milestone must survive"
    assert milestone.status == MilestoneStatus.DISPUTED


def test_outsider_cannot_read_plan(client, project, make_user, headers):
    outsider = make_user()
    response = client.get(_plan_url('company', project), headers=headers(outsider))
    assert response.status_code == 404


def test_work_flow_through_to_completion(client, company, provider, project, headers):
    """Start, submit, approve and pay both milestones; the project completes"""
    for milestone in list(project.milestones):
        url = f"/api/provider/milestones/{milestone.id}/status"
        started = client.patch(url, headers=headers(provider), json={'status': MilestoneStatus.IN_PROGRESS})
        assert started.status_code == 200, f"Start failed: {started.get_json()}"

        submitted = client.patch(url, headers=headers(provider), json={
            'status': MilestoneStatus.SUBMITTED,
            'deliverables': 'https://example.com/build.zip',
            'submission_note': 'Ready for review'
        })
        data = submitted.get_json()['data']
        assert data['status'] == MilestoneStatus.SUBMITTED
        assert data['submitted_at'] is not None

        approved = client.post(f"/api/company/milestones/{milestone.id}/approve", headers=headers(company))
        assert approved.get_json()['data']['status'] == MilestoneStatus.APPROVED

        paid = client.post(f"/api/company/milestones/{milestone.id}/pay", headers=headers(company))
        assert paid.get_json()['data']['status'] == MilestoneStatus.PAID

    db.session.expire_all()
    finished = db.session.get(Project, project.id)
    assert finished.status == ProjectStatus.COMPLETED, f"Expected COMPLETED, got {finished.status}"
    assert finished.completed_at is not None
    assert finished.provider.provider_profile.total_projects == 1


def test_reject_needs_reason_and_allows_resubmission(client, company, provider, project, headers):
    milestone = project.milestones[0]
    url = f"/api/provider/milestones/{milestone.id}/status"
    client.patch(url, headers=headers(provider), json={'status': MilestoneStatus.IN_PROGRESS})
    client.patch(url, headers=headers(provider), json={'status': MilestoneStatus.SUBMITTED})

    no_reason = client.post(f"/api/company/milestones/{milestone.id}/reject", headers=headers(company), json={})
    assert no_reason.status_code == 400

    rejected = client.post(f"/api/company/milestones/{milestone.id}/reject", headers=headers(company),
                           json={'reason': 'Logo is blurry'})
    assert rejected.get_json()['data']['rejection_reason'] == 'Logo is blurry'

    resubmitted = client.patch(url, headers=headers(provider), json={'status': MilestoneStatus.SUBMITTED})
    assert resubmitted.status_code == 200, "A rejected milestone can be submitted again"


def test_provider_cannot_skip_states(client, provider, project, headers):
    milestone = project.milestones[0]
    response = client.patch(f"/api/provider/milestones/{milestone.id}/status", headers=headers(provider),
                            json={'status': MilestoneStatus.APPROVED})
    assert response.status_code == 400


def test_unapproved_milestone_cannot_be_paid(client, company, project, headers):
    milestone = project.milestones[0]
    response = client.post(f"/api/company/milestones/{milestone.id}/pay", headers=headers(company))
    assert response.status_code == 400
