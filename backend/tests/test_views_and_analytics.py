from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import select

from protoshare.main import app
from protoshare import models, services
from protoshare.errors import ServiceError

client = TestClient(app)

FIGMA = 'https://www.figma.com/proto/AbC123/Screens'


def _create(headers, name, label='Acme'):
    r = client.post('/api/projects', json={'name': name, 'figma_url': FIGMA, 'client_label': label}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def _add_view(session, project, days_ago=0):
    session.add(models.ProjectView(
        project_id=project['id'],
        project_slug=project['slug'],
        viewed_at=models.utcnow() - timedelta(days=days_ago),
    ))
    session.commit()


def test_track_view_records_request_details(auth_headers, session):
    p = _create(auth_headers, 'Home')
    r = client.post(
        '/api/track-view',
        json={'project_id': p['id'], 'project_slug': p['slug']},
        headers={'user-agent': 'pytest-agent', 'referer': 'https://client.example.com/', 'x-forwarded-for': '203.0.113.9, 10.0.0.1'},
    )
    assert r.status_code == 200
    assert r.json() == {'success': True}
    view = session.exec(select(models.ProjectView)).one()
    assert view.project_id == p['id']
    assert view.user_agent == 'pytest-agent'
    assert view.referer == 'https://client.example.com/'
    assert view.ip_address == '203.0.113.9'


def test_track_view_validation(auth_headers):
    r = client.post('/api/track-view', json={'project_slug': 'home'})
    assert r.status_code == 400
    r = client.post('/api/track-view', json={'project_id': 'nope', 'project_slug': 'nope'})
    assert r.status_code == 404


def test_viewer_page_counts_a_view(auth_headers, session):
    p = _create(auth_headers, 'Home')
    client.get('/p/home')
    client.get('/p/home?share=abc')
    views = session.exec(select(models.ProjectView).where(models.ProjectView.project_id == p['id'])).all()
    assert len(views) == 2


def test_analytics_window_bounds():
    dates = services.AnalyticsService.window(3, today=date(2024, 3, 1))
    assert dates == [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
    assert len(services.AnalyticsService.window(None, today=date(2024, 3, 1))) == 90
    for bad in (0, -5, 366):
        with pytest.raises(ServiceError):
            services.AnalyticsService.window(bad)


def test_analytics_overview_fills_missing_days(auth_headers, session):
    home = _create(auth_headers, 'Home', 'Acme')
    cart = _create(auth_headers, 'Cart', 'Acme')
    dash = _create(auth_headers, 'Dash', 'Beta')
    _add_view(session, home)
    _add_view(session, home, days_ago=2)
    _add_view(session, cart)
    _add_view(session, cart)
    _add_view(session, cart)
    # outside a 7 day window
    _add_view(session, cart, days_ago=30)

    r = client.get('/api/analytics', params={'days': 7}, headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    today = models.utcnow().date()
    assert body['date_range'] == {
        'start': (today - timedelta(days=6)).isoformat(),
        'end': today.isoformat(),
        'days': 7,
    }
    series = body['projects']
    assert [s['project_name'] for s in series] == ['Cart', 'Home', 'Dash']
    assert [s['total_views'] for s in series] == [3, 2, 0]
    home_series = series[1]
    assert len(home_series['views']) == 7
    assert home_series['views'][-1] == {'date': today.isoformat(), 'views': 1}
    assert home_series['views'][-3]['views'] == 1
    assert home_series['client_label'] == 'Acme'
    assert series[2]['project_slug'] == dash['slug']


def test_analytics_ties_keep_client_label_order(auth_headers):
    _create(auth_headers, 'Zed', 'Zulu')
    _create(auth_headers, 'Alpha', 'Alpha')
    body = client.get('/api/analytics', params={'days': 1}, headers=auth_headers).json()
    assert [s['client_label'] for s in body['projects']] == ['Alpha', 'Zulu']


def test_analytics_excludes_deleted_projects(auth_headers, session):
    gone = _create(auth_headers, 'Gone')
    _add_view(session, gone)
    client.delete(f"/api/projects/{gone['id']}", headers=auth_headers)
    body = client.get('/api/analytics', headers=auth_headers).json()
    assert body['projects'] == []
    assert body['date_range']['days'] == 90
    assert client.get(f"/api/analytics/{gone['id']}", headers=auth_headers).status_code == 404


def test_project_analytics(auth_headers, session):
    home = _create(auth_headers, 'Home')
    other = _create(auth_headers, 'Other')
    _add_view(session, home)
    _add_view(session, other)
    r = client.get(f"/api/analytics/{home['id']}", params={'days': 14}, headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body['project_id'] == home['id']
    assert body['total_views'] == 1
    assert len(body['views']) == 14
    assert body['date_range']['days'] == 14


def test_analytics_rejects_bad_days_and_anonymous(auth_headers):
    assert client.get('/api/analytics', params={'days': 0}, headers=auth_headers).status_code == 400
    assert client.get('/api/analytics', params={'days': 400}, headers=auth_headers).status_code == 400
    assert client.get('/api/analytics').status_code == 401
