#!/usr/bin/env python3
"""Test direct messages, in-app notifications and presigned uploads"""
import io

from servicehub import storage


def _send(client, sender, receiver, headers, content='Hi, is the wireframe ready?', **extra):
    body = {'receiver_id': receiver.id, 'content': content}
    body.update(extra)
    return client.post('/api/messages', headers=headers(sender), json=body)


def test_conversation_flow(client, company, provider, project, headers):
    first = _send(client, company, provider, headers, project_id=project.id)
    assert first.status_code == 201, f"Send failed: {first.get_json()}"
    _send(client, provider, company, headers, content='Uploading it tonight')
    _send(client, company, provider, headers, content='Great, thanks')

    conversations = client.get('/api/messages/conversations', headers=headers(provider)).get_json()['data']
    assert len(conversations) == 1
    assert conversations[0]['user']['id'] == company.id
    assert conversations[0]['unread_count'] == 2, f"Expected 2 unread, got {conversations[0]['unread_count']}"
    assert conversations[0]['last_message']['content'] == 'Great, thanks'

    thread = client.get(f"/api/messages?other_user_id={company.id}", headers=headers(provider)).get_json()['data']
    assert [m['content'] for m in thread['items']][0] == 'Hi, is the wireframe ready?', "Threads read oldest first"
    assert thread['pagination']['total'] == 3


def test_send_validation(client, company, provider, make_user, make_project, headers):
    assert _send(client, company, company, headers).status_code == 400, "Messaging yourself is refused"
    assert _send(client, company, provider, headers, content='  ').status_code == 400
    assert _send(client, company, provider, headers, message_type='file').status_code == 400
    assert _send(client, company, provider, headers, message_type='video').status_code == 400

    stranger = make_user()
    unrelated = make_project(stranger, provider)
    response = _send(client, company, provider, headers, project_id=unrelated.id)
    assert response.status_code == 400, "A project must belong to both people in the conversation"


def test_read_and_delete_permissions(client, company, provider, headers):
    message_id = _send(client, company, provider, headers).get_json()['data']['id']

    assert client.patch(f"/api/messages/{message_id}/read", headers=headers(company)).status_code == 404
    read = client.patch(f"/api/messages/{message_id}/read", headers=headers(provider))
    assert read.get_json()['data']['is_read'] is True

    assert client.delete(f"/api/messages/{message_id}", headers=headers(provider)).status_code == 404
    assert client.delete(f"/api/messages/{message_id}", headers=headers(company)).status_code == 200


def test_attachment_upload(client, company, headers):
    response = client.post('/api/messages/upload', headers=headers(company), data={
        'file': (io.BytesIO(b'col1,col2\n1,2\n'), 'figures.csv')
    }, content_type='multipart/form-data')
    assert response.status_code == 201, f"Upload failed: {response.get_json()}"
    assert response.get_json()['data']['file_url'].startswith(f"uploads/messages/{company.id}/")


def test_notifications_unread_and_mark_read(client, company, provider, headers):
    for content in ('one', 'two', 'three'):
        _send(client, company, provider, headers, content=content)

    count = client.get('/api/notifications/unread-count', headers=headers(provider)).get_json()['data']
    assert count == {'count': 3}

    nothing = client.post('/api/notifications/mark-read', headers=headers(provider), json={'ids': []})
    assert nothing.get_json()['data'] == {'updated': 0}, "An empty id list marks nothing"

    notifications = client.get('/api/notifications?unread_only=true', headers=headers(provider)).get_json()['data']
    assert all(n['type'] == 'message' for n in notifications)
    assert notifications[0]['metadata'] == {'sender_id': company.id}

    marked = client.post('/api/notifications/mark-read', headers=headers(provider),
                         json={'ids': [notifications[0]['id']]})
    assert marked.get_json()['data'] == {'updated': 1}

    marked = client.post('/api/notifications/mark-read', headers=headers(provider), json={})
    assert marked.get_json()['data'] == {'updated': 2}
    assert client.post('/api/notifications/mark-read', headers=headers(provider),
                       json={'ids': 'all'}).status_code == 400


def test_presigned_upload_needs_bucket(client, company, headers):
    response = client.post('/api/uploads/presigned-url', headers=headers(company), json={'file_name': 'a.pdf'})
    assert response.status_code == 503


def test_presigned_upload_and_download(app, client, company, provider, headers, monkeypatch):
    class FakeS3:
        def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
            return f"https://s3.example.com/{Params['Bucket']}/{Params['Key']}?op={ClientMethod}"

    app.config['S3_BUCKET'] = 'servicehub-test'
    monkeypatch.setattr(storage, '_s3_client', lambda: FakeS3())

    response = client.post('/api/uploads/presigned-url', headers=headers(company),
                           json={'file_name': 'brief.pdf', 'category': 'attachments', 'content_type': 'application/pdf'})
    data = response.get_json()['data']
    assert response.status_code == 200, f"Presign failed: {response.get_json()}"
    assert data['key'].startswith(f"uploads/attachments/{company.id}/") and data['key'].endswith('.pdf')
    assert 'op=put_object' in data['upload_url']

    own = client.get(f"/api/uploads/download?key={data['key']}", headers=headers(company))
    assert 'op=get_object' in own.get_json()['data']['download_url']
    assert client.get(f"/api/uploads/download?key={data['key']}", headers=headers(provider)).status_code == 404

    bad_category = client.post('/api/uploads/presigned-url', headers=headers(company),
                               json={'file_name': 'x.pdf', 'category': 'secrets'})
    assert bad_category.status_code == 400
