#!/usr/bin/env python3
"""Test KYC uploads and admin verification"""
import io

from servicehub.lifecycle import KycDocumentStatus, KycDocumentType, KycStatus, Role
from servicehub.models import KycDocument, User, db


def _upload(client, user, headers, kind='provider', filename='ic-front.pdf'):
    return client.post(f"/api/kyc/upload/{kind}", headers=headers(user), data={
        'document': (io.BytesIO(b'%PDF-1.4 identity card'), filename)
    }, content_type='multipart/form-data')


def test_upload_marks_user_pending(client, make_user, headers):
    provider = make_user(Role.PROVIDER, kyc_status=KycStatus.INACTIVE, is_verified=False)
    response = _upload(client, provider, headers)
    data = response.get_json()['data']
    assert response.status_code == 201, f"Upload failed: {response.get_json()}"
    assert data['type'] == KycDocumentType.PROVIDER_ID
    assert data['status'] == KycDocumentStatus.UPLOADED
    assert data['file_url'].startswith(f"uploads/kyc/{provider.id}/PROVIDER_ID-")
    assert data['file_size'] > 0

    db.session.expire_all()
    assert db.session.get(User, provider.id).kyc_status == KycStatus.PENDING_VERIFICATION


def test_upload_rejects_bad_input(client, company, headers):
    assert _upload(client, company, headers, filename='payload.exe').status_code == 400
    assert _upload(client, company, headers, kind='passport').status_code == 404
    response = client.post('/api/kyc/upload/company', headers=headers(company), data={},
                           content_type='multipart/form-data')
    assert response.status_code == 400


def test_admin_approves_user(client, admin, make_user, headers):
    """Approval verifies every uploaded document and activates the account"""
    company = make_user(Role.CUSTOMER, kyc_status=KycStatus.INACTIVE, is_verified=False)
    _upload(client, company, headers, kind='company')
    _upload(client, company, headers, kind='company-director')

    queue = client.get('/api/admin/kyc', headers=headers(admin)).get_json()['data']
    assert [entry['id'] for entry in queue] == [company.id]
    assert len(queue[0]['documents']) == 2

    response = client.patch(f"/api/admin/kyc/{company.id}", headers=headers(admin),
                            json={'approve': True, 'notes': 'Documents match SSM records'})
    data = response.get_json()['data']
    assert response.status_code == 200, f"Approval failed: {response.get_json()}"
    assert data['user']['kyc_status'] == KycStatus.ACTIVE
    assert data['user']['is_verified'] is True
    for document in data['documents']:
        assert document['status'] == KycDocumentStatus.VERIFIED
        assert document['reviewed_by'] == admin.id
        assert document['reviewed_at'] is not None

    again = client.patch(f"/api/admin/kyc/{company.id}", headers=headers(admin), json={'approve': True})
    assert again.status_code == 400, "Nothing is left to review"


def test_admin_rejects_user(client, admin, make_user, headers):
    provider = make_user(Role.PROVIDER, kyc_status=KycStatus.INACTIVE, is_verified=False)
    _upload(client, provider, headers)

    assert client.patch(f"/api/admin/kyc/{provider.id}", headers=headers(admin), json={}).status_code == 400

    response = client.patch(f"/api/admin/kyc/{provider.id}", headers=headers(admin),
                            json={'approve': 'false', 'notes': 'Photo unreadable'})
    data = response.get_json()['data']
    assert data['user']['kyc_status'] == KycStatus.INACTIVE
    assert data['user']['is_verified'] is False
    assert data['documents'][0]['status'] == KycDocumentStatus.REJECTED
    assert data['documents'][0]['review_notes'] == 'Photo unreadable'


def test_single_document_review(client, admin, make_user, headers):
    provider = make_user(Role.PROVIDER, kyc_status=KycStatus.INACTIVE, is_verified=False)
    document_id = _upload(client, provider, headers).get_json()['data']['id']

    bad = client.patch(f"/api/kyc/{document_id}/status", headers=headers(admin), json={'status': 'approved'})
    assert bad.status_code == 400

    response = client.patch(f"/api/kyc/{document_id}/status", headers=headers(admin),
                            json={'status': KycDocumentStatus.VERIFIED})
    assert response.get_json()['data']['status'] == KycDocumentStatus.VERIFIED

    db.session.expire_all()
    user = db.session.get(User, provider.id)
    assert user.kyc_status == KycStatus.ACTIVE and user.is_verified is True


def test_documents_are_private(client, company, admin, make_user, headers):
    _upload(client, company, headers, kind='company')
    other = make_user()
    assert client.get(f"/api/kyc/user/{company.id}", headers=headers(other)).status_code == 403
    assert len(client.get(f"/api/kyc/user/{company.id}", headers=headers(company)).get_json()['data']) == 1

    document = KycDocument.query.filter_by(user_id=company.id).one()
    download = client.get(f"/api/admin/kyc/doc/{document.id}/download", headers=headers(admin))
    assert download.status_code == 200
    assert download.data == b'%PDF-1.4 identity card'
    download.close()


def test_upload_owner_comes_from_token(client, admin, provider, headers):
    """A user_id form field cannot redirect the upload to another account"""
    for target in (provider.id, '../../etc'):
        response = client.post('/api/kyc/upload/provider', headers=headers(admin), data={
            'user_id': target,
            'document': (io.BytesIO(b'%PDF-1.4 identity card'), 'ic-front.pdf')
        }, content_type='multipart/form-data')
        assert response.status_code == 201, f"Upload failed: {response.get_json()}"
        data = response.get_json()['data']
        assert data['user_id'] == admin.id
        assert data['file_url'].startswith(f"uploads/kyc/{admin.id}/")

    assert KycDocument.query.filter_by(user_id=provider.id).count() == 0
    assert KycDocument.query.filter_by(user_id='../../etc').count() == 0
