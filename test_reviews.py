#!/usr/bin/env python3
"""Test reviews of completed projects, provider rating upkeep and replies"""
from servicehub.lifecycle import ProjectStatus
from servicehub.models import ProviderProfile, db


def _review(client, company, project, headers, rating=5, **extra):
    body = {'project_id': project.id, 'rating': rating, 'comment': 'Delivered ahead of schedule'}
    body.update(extra)
    return client.post('/api/company/reviews', headers=headers(company), json=body)


def _profile(provider):
    db.session.expire_all()
    return ProviderProfile.query.filter_by(user_id=provider.id).one()


def test_review_completed_project_updates_rating(client, company, provider, make_project, headers):
    first = make_project(company, provider, status=ProjectStatus.COMPLETED)
    second = make_project(company, provider, status=ProjectStatus.COMPLETED)

    response = _review(client, company, first, headers, rating=5, quality_rating=5)
    assert response.status_code == 201, f"Review failed: {response.get_json()}"
    assert response.get_json()['data']['quality_rating'] == 5
    _review(client, company, second, headers, rating=4)

    profile = _profile(provider)
    assert profile.rating == 4.5, f"Expected average 4.5, got {profile.rating}"
    assert profile.total_reviews == 2

    stats = client.get('/api/provider/reviews/stats', headers=headers(provider)).get_json()['data']
    assert stats['total_reviews'] == 2
    assert stats['rating_distribution'] == {'1': 0, '2': 0, '3': 0, '4': 1, '5': 1}


def test_review_rules(client, company, provider, project, make_project, headers):
    assert _review(client, company, project, headers).status_code == 400, "Running projects cannot be reviewed"

    done = make_project(company, provider, status=ProjectStatus.COMPLETED)
    assert _review(client, company, done, headers, rating=6).status_code == 400
    assert _review(client, company, done, headers, rating=None).status_code == 400
    assert _review(client, company, done, headers).status_code == 201

    duplicate = _review(client, company, done, headers)
    assert duplicate.status_code == 400
    assert 'already reviewed' in duplicate.get_json()['message']


def test_completed_projects_for_review(client, company, provider, make_project, headers):
    done = make_project(company, provider, status=ProjectStatus.COMPLETED)
    pending = client.get('/api/company/reviews/completed-projects', headers=headers(company)).get_json()['data']
    assert pending[0]['project_id'] == done.id and pending[0]['has_review'] is False

    _review(client, company, done, headers)
    listed = client.get('/api/company/reviews/completed-projects', headers=headers(company)).get_json()['data']
    assert listed[0]['has_review'] is True


def test_update_and_delete_recalculate(client, company, provider, make_project, headers):
    done = make_project(company, provider, status=ProjectStatus.COMPLETED)
    review_id = _review(client, company, done, headers, rating=5).get_json()['data']['id']

    client.patch(f"/api/company/reviews/{review_id}", headers=headers(company), json={'rating': 3})
    assert _profile(provider).rating == 3.0

    assert client.delete(f"/api/company/reviews/{review_id}", headers=headers(company)).status_code == 200
    profile = _profile(provider)
    assert profile.rating == 0.0 and profile.total_reviews == 0


def test_provider_replies_once(client, company, provider, make_project, headers):
    done = make_project(company, provider, status=ProjectStatus.COMPLETED)
    review_id = _review(client, company, done, headers).get_json()['data']['id']

    reply = client.post(f"/api/provider/reviews/{review_id}/reply", headers=headers(provider),
                        json={'content': 'Thank you, it was a pleasure.'})
    assert reply.status_code == 201, f"Reply failed: {reply.get_json()}"
    reply_id = reply.get_json()['data']['id']

    second = client.post(f"/api/provider/reviews/{review_id}/reply", headers=headers(provider),
                         json={'content': 'Again'})
    assert second.status_code == 400

    edited = client.patch(f"/api/provider/reviews/replies/{reply_id}", headers=headers(provider),
                          json={'content': 'Thanks again!'})
    assert edited.get_json()['data']['content'] == 'Thanks again!'

    received = client.get('/api/provider/reviews', headers=headers(provider)).get_json()['data']
    assert received['items'][0]['replies'][0]['content'] == 'Thanks again!'
