#!/usr/bin/env python3
"""Test admin user management, project views and platform reports"""
from datetime import datetime

from conftest import PASSWORD
from servicehub.lifecycle import KycStatus, Role


def test_list_users_filters_by_role(client, admin, company, provider, headers):
    response = client.get('/api/admin/users?role=provider', headers=headers(admin))
    data = response.get_json()['data']
    assert response.status_code == 200
    assert [u['id'] for u in data['items']] == [provider.id], f"Unexpected users {data['items']}"
    assert data['pagination']['total'] == 1

    everyone = client.get('/api/admin/users', headers=headers(admin)).get_json()['data']
    assert everyone['pagination']['total'] == 3

    found = client.get('/api/admin/users?search=acme', headers=headers(admin)).get_json()['data']
    assert [u['id'] for u in found['items']] == [company.id]


def test_user_detail_includes_profiles(client, admin, provider, headers):
    data = client.get(f"/api/admin/users/{provider.id}", headers=headers(admin)).get_json()['data']
    assert data['provider_profile']['user_id'] == provider.id
    assert data['customer_profile'] is None


def test_suspending_a_user_blocks_access(client, admin, company, headers):
    response = client.patch(f"/api/admin/users/{company.id}/status", headers=headers(admin),
                            json={'kyc_status': KycStatus.SUSPENDED})
    assert response.status_code == 200, f"Status update failed: {response.get_json()}"
    assert response.get_json()['data']['kyc_status'] == KycStatus.SUSPENDED

    assert client.get('/api/auth/me', headers=headers(company)).status_code == 403
    login = client.post('/api/auth/login', json={'email': company.email, 'password': PASSWORD})
    assert login.status_code == 403


def test_status_update_rules(client, admin, company, headers):
    own = client.patch(f"/api/admin/users/{admin.id}/status", headers=headers(admin),
                       json={'kyc_status': KycStatus.INACTIVE})
    assert own.status_code == 400, "Admins cannot change their own status"

    invalid = client.patch(f"/api/admin/users/{company.id}/status", headers=headers(admin),
                           json={'kyc_status': 'banned'})
    assert invalid.status_code == 400

    empty = client.patch(f"/api/admin/users/{company.id}/status", headers=headers(admin), json={})
    assert empty.status_code == 400


def test_project_views(client, admin, company, provider, project, headers):
    listed = client.get('/api/admin/projects?status=IN_PROGRESS', headers=headers(admin)).get_json()['data']
    assert [p['id'] for p in listed['items']] == [project.id]
    assert 'milestones' not in listed['items'][0]

    detail = client.get(f"/api/admin/projects/{project.id}", headers=headers(admin)).get_json()['data']
    assert len(detail['milestones']) == 2
    assert detail['payments'] == [] and detail['disputes'] == []

    assert client.get('/api/admin/projects?status=DONE', headers=headers(admin)).status_code == 400


def test_reports(client, admin, company, project, headers):
    milestone = project.milestones[0]
    payment_id = client.post('/api/payment/create-intent', headers=headers(company), json={
        'project_id': project.id, 'milestone_id': milestone.id
    }).get_json()['data']['payment_id']
    client.post('/api/payment/finalize', headers=headers(company), json={'payment_id': payment_id, 'success': True})

    response = client.get('/api/admin/reports?date_range=30d', headers=headers(admin))
    data = response.get_json()['data']
    assert response.status_code == 200, f"Reports failed: {response.get_json()}"
    assert data['overview']['active_projects'] == 1
    assert data['overview']['total_providers'] == 1
    assert data['payment_volume'] == 4000.0
    assert data['platform_revenue'] == 400.0
    assert data['payments_by_status']['ESCROWED'] == 1
    assert len(data['revenue_series']) == 6
    assert data['revenue_series'][-1]['month'] == datetime.utcnow().strftime('%Y-%m')
    assert data['revenue_series'][-1]['volume'] == 4000.0
    assert data['revenue_by_category'][0]['category'] == 'WEB_DEVELOPMENT'
    assert data['top_providers'][0]['earnings'] == 3600.0

    assert client.get('/api/admin/reports?date_range=2w', headers=headers(admin)).status_code == 400


def test_admin_routes_need_admin(client, make_user, headers):
    provider = make_user(Role.PROVIDER)
    assert client.get('/api/admin/reports', headers=headers(provider)).status_code == 403
