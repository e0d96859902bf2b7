#!/usr/bin/env python3
"""Test registration, login, role checks and the login rate limiter"""
from conftest import PASSWORD
from servicehub.lifecycle import KycStatus, Role


def test_register_company_returns_token(client):
    """Company registration creates the user, its profile and a session"""
    response = client.post('/api/auth/register/company', json={
        'name': 'Kedai Runcit',
        'email': 'Owner@Example.com',
        'password': 'Strong@Pass1',
        'company_name': 'Kedai Runcit Sdn Bhd'
    })
    body = response.get_json()
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {body}"
    assert body['data']['token'], "Registration should return a token"
    assert body['data']['user']['email'] == 'owner@example.com', "Email should be normalized"
    assert body['data']['user']['roles'] == [Role.CUSTOMER]

    me = client.get('/api/auth/me', headers={'Authorization': f"Bearer {body['data']['token']}"})
    assert me.status_code == 200
    assert me.get_json()['data']['has_customer_profile'] is True


def test_register_rejects_weak_password_and_duplicate_email(client, provider):
    weak = client.post('/api/auth/register/provider', json={
        'name': 'Weak', 'email': 'weak@example.com', 'password': 'password'
    })
    assert weak.status_code == 400, f"Weak password should fail, got {weak.status_code}"

    duplicate = client.post('/api/auth/register/provider', json={
        'name': 'Copy', 'email': provider.email, 'password': 'Strong@Pass1'
    })
    assert duplicate.status_code == 400
    assert duplicate.get_json()['message'] == 'Email already registered'


def test_login_success_and_failure(client, company):
    response = client.post('/api/auth/login', json={'email': company.email, 'password': PASSWORD})
    assert response.status_code == 200, f"Login failed: {response.get_json()}"
    assert response.get_json()['data']['user']['id'] == company.id

    response = client.post('/api/auth/login', json={'email': company.email, 'password': 'Wrong@123'})
    assert response.status_code == 401
    assert response.get_json()['success'] is False


def test_suspended_user_cannot_login(client, make_user):
    user = make_user(Role.CUSTOMER, kyc_status=KycStatus.SUSPENDED)
    response = client.post('/api/auth/login', json={'email': user.email, 'password': PASSWORD})
    assert response.status_code == 403, f"Expected 403, got {response.status_code}"


def test_protected_routes_need_token_and_role(client, company, headers):
    assert client.get('/api/auth/me').status_code == 401
    assert client.get('/api/auth/me', headers={'Authorization': 'Bearer nonsense'}).status_code == 401

    response = client.get('/api/provider/profile', headers=headers(company))
    assert response.status_code == 403, f"A company must not reach provider routes, got {response.status_code}"
    assert client.get('/api/admin/users', headers=headers(company)).status_code == 403


def test_login_rate_limit(app, client, company):
    """Repeated failures lock the caller out with 429"""
    app.config['LOGIN_MAX_ATTEMPTS'] = 2
    for _ in range(2):
        response = client.post('/api/auth/login', json={'email': company.email, 'password': 'Wrong@123'})
        assert response.status_code == 401

    response = client.post('/api/auth/login', json={'email': company.email, 'password': PASSWORD})
    assert response.status_code == 429, f"Expected lockout, got {response.status_code}"


def test_rate_limit_ignores_forwarded_for(app, client, company):
    """A spoofed X-Forwarded-For header does not reset the attempt counter"""
    app.config['LOGIN_MAX_ATTEMPTS'] = 3
    statuses = []
    for i in range(6):
        response = client.post('/api/auth/login', headers={'X-Forwarded-For': f"10.0.0.{i}"},
                               json={'email': company.email, 'password': 'Wrong@123'})
        statuses.append(response.status_code)
    assert statuses == [401, 401, 401, 429, 429, 429], f"Unexpected statuses {statuses}"


def test_proxy_fix_is_opt_in(tmp_path):
    from werkzeug.middleware.proxy_fix import ProxyFix

    from servicehub import create_app
    from servicehub.config import TestingConfig

    class BehindProxy(TestingConfig):
        PROXY_FIX_X_FOR = 1
        UPLOAD_FOLDER = str(tmp_path / 'uploads')
        LOG_DIR = str(tmp_path / 'logs')

    assert isinstance(create_app(BehindProxy).wsgi_app, ProxyFix)


def test_check_email(client, company):
    response = client.get(f"/api/auth/check-email?email={company.email}")
    assert response.get_json()['data'] == {'exists': True}
    response = client.get('/api/auth/check-email?email=nobody@example.com')
    assert response.get_json()['data'] == {'exists': False}
    assert client.get('/api/auth/check-email').status_code == 400


def test_become_provider_adds_role(client, company, headers):
    response = client.post('/api/auth/become-provider', json={'bio': 'Also freelancing'}, headers=headers(company))
    assert response.status_code == 200, f"Unexpected response {response.get_json()}"
    assert set(response.get_json()['data']['user']['roles']) == {Role.CUSTOMER, Role.PROVIDER}

    again = client.post('/api/auth/become-provider', json={}, headers=headers(company))
    assert again.status_code == 400


def test_health(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'healthy'
    assert response.headers['X-Frame-Options'] == 'DENY'


def test_logins_are_audited(client, company):
    from servicehub.models import AuditLog

    client.post('/api/auth/login', json={'email': company.email, 'password': 'Wrong@Pass1'})
    client.post('/api/auth/login', json={'email': company.email, 'password': PASSWORD})

    events = [e.event_type for e in AuditLog.query.order_by(AuditLog.id).all()]
    assert events == ['login_failure', 'login_success'], f"Unexpected audit events {events}"
    success = AuditLog.query.filter_by(event_type='login_success').one()
    assert success.user_id == company.id
    assert success.severity == 'low'


def test_audit_webhook_forwarding(client, company, monkeypatch):
    from servicehub import audit
    from servicehub.models import AuditLog

    posted = []

    class Accepted:
        def raise_for_status(self):
            return None

    def fake_post(url, json=None, timeout=None):
        posted.append((url, json))
        return Accepted()

    monkeypatch.setattr(audit.audit_logger, 'webhook_url', 'https://siem.example.com/hook')
    monkeypatch.setattr(audit.requests, 'post', fake_post)

    client.post('/api/auth/login', json={'email': company.email, 'password': PASSWORD})
    assert posted[0][0] == 'https://siem.example.com/hook'
    assert posted[0][1]['event_type'] == 'login_success'
    assert AuditLog.query.one().forwarded is True
