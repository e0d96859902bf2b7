#!/usr/bin/env python3
"""Test milestone escrow: funding, failure, release, withdrawal, transfer and refund"""
from servicehub.errors import PaymentGatewayError
from servicehub.lifecycle import BankTransferStatus, MilestoneStatus, PaymentStatus, ProjectStatus, Role
from servicehub.models import Invoice, Milestone, Payment, Project, db
from servicehub.payment_gateway import gateway


def _fund(client, company, project, milestone, headers):
    response = client.post('/api/payment/create-intent', headers=headers(company), json={
        'project_id': project.id,
        'milestone_id': milestone.id
    })
    assert response.status_code == 201, f"Intent failed: {response.get_json()}"
    payment_id = response.get_json()['data']['payment_id']
    finalized = client.post('/api/payment/finalize', headers=headers(company),
                            json={'payment_id': payment_id, 'success': True})
    assert finalized.status_code == 200, f"Finalize failed: {finalized.get_json()}"
    return payment_id


def _submit_and_approve(client, company, provider, milestone, headers):
    client.patch(f"/api/provider/milestones/{milestone.id}/status", headers=headers(provider),
                 json={'status': MilestoneStatus.SUBMITTED})
    client.post(f"/api/company/milestones/{milestone.id}/approve", headers=headers(company))


def test_intent_uses_internal_settlement(client, company, project, headers):
    """Without a Stripe key the intent gets a local reference and a fee split"""
    milestone = project.milestones[0]
    response = client.post('/api/payment/create-intent', headers=headers(company), json={
        'project_id': project.id,
        'milestone_id': milestone.id
    })
    data = response.get_json()['data']
    assert response.status_code == 201
    assert data['status'] == PaymentStatus.IN_PROGRESS
    assert data['payment_intent_id'].startswith('internal_')
    assert data['amount'] == 4000.0
    assert data['platform_fee'] == 400.0, f"Expected 10% fee, got {data['platform_fee']}"
    assert data['provider_amount'] == 3600.0
    assert data['currency'] == 'MYR'

    duplicate = client.post('/api/payment/create-intent', headers=headers(company), json={
        'project_id': project.id,
        'milestone_id': milestone.id
    })
    assert duplicate.status_code == 400, "A milestone cannot have two open payments"


def test_finalize_escrows_and_issues_invoice(client, company, project, headers):
    milestone = project.milestones[0]
    payment_id = _fund(client, company, project, milestone, headers)

    payment = db.session.get(Payment, payment_id)
    assert payment.status == PaymentStatus.ESCROWED
    assert payment.escrowed_at is not None
    assert db.session.get(Milestone, milestone.id).status == MilestoneStatus.IN_PROGRESS, \
        "Funding a locked milestone starts the work"

    invoice = Invoice.query.filter_by(payment_id=payment_id).first()
    assert invoice is not None, "Escrow should issue an invoice"
    assert invoice.invoice_number.startswith('INV-')

    again = client.post('/api/payment/finalize', headers=headers(company),
                        json={'payment_id': payment_id, 'success': True})
    assert again.status_code == 200, "Confirming twice is harmless"
    assert Invoice.query.filter_by(payment_id=payment_id).count() == 1

    detail = client.get(f"/api/payment/{payment_id}", headers=headers(company)).get_json()['data']
    assert detail['invoice']['invoice_number'] == invoice.invoice_number


def test_unlocked_milestone_cannot_be_funded(client, company, provider, make_project, headers):
    project = make_project(company, provider, locked=False)
    response = client.post('/api/payment/create-intent', headers=headers(company), json={
        'project_id': project.id,
        'milestone_id': project.milestones[0].id
    })
    assert response.status_code == 400


def test_failed_payment(client, company, project, headers):
    milestone = project.milestones[0]
    payment_id = client.post('/api/payment/create-intent', headers=headers(company), json={
        'project_id': project.id, 'milestone_id': milestone.id
    }).get_json()['data']['payment_id']

    response = client.post('/api/payment/finalize', headers=headers(company),
                           json={'payment_id': payment_id, 'success': False, 'reason': 'Card declined'})
    data = response.get_json()['data']
    assert data['status'] == PaymentStatus.FAILED
    assert data['failure_reason'] == 'Card declined'
    assert db.session.get(Milestone, milestone.id).status == MilestoneStatus.LOCKED

    retry = client.post('/api/payment/create-intent', headers=headers(company), json={
        'project_id': project.id, 'milestone_id': milestone.id
    })
    assert retry.status_code == 201, "A failed payment can be retried"


def test_gateway_error_marks_payment_failed(client, company, project, headers, monkeypatch):
    def boom(**kwargs):
        raise PaymentGatewayError('Payment gateway error: card network down')

    monkeypatch.setattr(gateway, 'create_payment_intent', boom)
    response = client.post('/api/payment/create-intent', headers=headers(company), json={
        'project_id': project.id, 'milestone_id': project.milestones[0].id
    })
    assert response.status_code == 500
    assert 'card network down' in response.get_json()['message']

    payment = Payment.query.one()
    assert payment.status == PaymentStatus.FAILED, f"Expected FAILED, got {payment.status}"
    assert payment.failed_at is not None


def test_release_withdraw_and_transfer(client, company, provider, admin, project, headers):
    """Approved work is released, withdrawn and confirmed as transferred by an admin"""
    milestone = project.milestones[0]
    payment_id = _fund(client, company, project, milestone, headers)

    early = client.post(f"/api/company/milestones/{milestone.id}/release-payment", headers=headers(company))
    assert early.status_code == 400, "Release needs an approved milestone"

    _submit_and_approve(client, company, provider, milestone, headers)
    released = client.post(f"/api/company/milestones/{milestone.id}/release-payment", headers=headers(company))
    assert released.status_code == 200, f"Release failed: {released.get_json()}"
    assert released.get_json()['data']['status'] == PaymentStatus.RELEASED

    ready = client.get('/api/admin/payments/ready-to-transfer', headers=headers(admin)).get_json()['data']
    assert [p['id'] for p in ready] == [payment_id]
    assert ready[0]['bank_details']['bank_name'] == 'Maybank'

    withdrawal = client.post('/api/payment/withdraw', headers=headers(provider))
    assert withdrawal.get_json()['data']['amount'] == 3600.0
    assert db.session.get(Payment, payment_id).bank_transfer_status == BankTransferStatus.REQUESTED

    missing_ref = client.post(f"/api/admin/payments/{payment_id}/confirm-transfer", headers=headers(admin), json={})
    assert missing_ref.status_code == 400

    confirmed = client.post(f"/api/admin/payments/{payment_id}/confirm-transfer", headers=headers(admin),
                            json={'reference': 'MBB-20261019-001'})
    data = confirmed.get_json()['data']
    assert data['status'] == PaymentStatus.TRANSFERRED
    assert data['bank_transfer_ref'] == 'MBB-20261019-001'
    assert db.session.get(Milestone, milestone.id).status == MilestoneStatus.PAID
    assert db.session.get(Project, project.id).status == ProjectStatus.IN_PROGRESS, \
        "One paid milestone of two leaves the project running"


def test_release_requires_bank_details(client, company, make_user, make_project, headers):
    provider = make_user(Role.PROVIDER)
    project = make_project(company, provider)
    milestone = project.milestones[0]
    _fund(client, company, project, milestone, headers)
    _submit_and_approve(client, company, provider, milestone, headers)

    response = client.post(f"/api/company/milestones/{milestone.id}/release-payment", headers=headers(company))
    assert response.status_code == 400
    assert 'bank details' in response.get_json()['message']


def test_admin_refund(client, company, admin, project, headers):
    milestone = project.milestones[0]
    payment_id = _fund(client, company, project, milestone, headers)

    response = client.post(f"/api/admin/payments/{payment_id}/refund", headers=headers(admin),
                           json={'reason': 'Project cancelled'})
    assert response.get_json()['data']['status'] == PaymentStatus.REFUNDED
    assert db.session.get(Milestone, milestone.id).status == MilestoneStatus.CANCELLED
    assert Invoice.query.filter_by(payment_id=payment_id).one().status == 'refunded'

    stats = client.get('/api/admin/payments/stats', headers=headers(admin)).get_json()['data']
    assert stats['by_status'][PaymentStatus.REFUNDED]['count'] == 1


def test_company_billing_overview(client, company, project, headers):
    _fund(client, company, project, project.milestones[0], headers)
    response = client.get('/api/company/billing/overview', headers=headers(company))
    assert response.status_code == 200, f"Overview failed: {response.get_json()}"

    invoices = client.get('/api/company/billing/invoices', headers=headers(company)).get_json()['data']
    assert invoices['pagination']['total'] == 1


def test_provider_bank_details_and_overview(client, company, provider, project, headers):
    saved = client.put('/api/provider/billing/bank-details', headers=headers(provider), json={
        'bank_name': 'CIMB', 'bank_account_number': '8000-1234-5678', 'bank_account_name': 'Aisyah Rahman'
    })
    assert saved.status_code == 200, f"Save failed: {saved.get_json()}"
    assert saved.get_json()['data']['bank_account_number'] == '****5678', "Account numbers are masked"

    invalid = client.put('/api/provider/billing/bank-details', headers=headers(provider), json={
        'bank_name': 'CIMB', 'bank_account_number': '12AB', 'bank_account_name': 'Aisyah Rahman'
    })
    assert invalid.status_code == 400

    payment_id = _fund(client, company, project, project.milestones[0], headers)
    overview = client.get('/api/provider/billing/overview', headers=headers(provider)).get_json()['data']
    assert overview['escrowed'] == 3600.0
    assert overview['total_earnings'] == 3600.0
    assert overview['top_clients'][0]['customer_id'] == company.id
    assert len(overview['monthly_earnings']) == 6

    receipt = client.get(f"/api/provider/billing/payments/{payment_id}/receipt", headers=headers(provider))
    assert receipt.get_json()['data']['receipt_number'].startswith('INV-')

    cleared = client.delete('/api/provider/billing/bank-details', headers=headers(provider))
    assert cleared.status_code == 200
    assert client.post('/api/payment/withdraw', headers=headers(provider)).status_code == 400
