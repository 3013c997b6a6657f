from fastapi.testclient import TestClient
from sqlmodel import select

from protoshare.main import app
from protoshare import main, models, services
from protoshare.utils.rate_limit import SlidingWindowLimiter

client = TestClient(app)

FIGMA = 'https://www.figma.com/proto/AbC123/Screens'

LEGACY_ACTIVE = [
    {
        'id': 'p-1',
        'name': 'Home Page',
        'slug': 'home-page',
        'figmaUrl': FIGMA,
        'clientLabel': 'Acme',
        'createdAt': '2024-05-01T10:00:00.000Z',
    },
    {'id': 'p-2', 'name': 'No Label', 'figma_url': FIGMA},
    {'id': 'p-3', 'name': 'Missing Url'},
    'not an object',
]


def test_import_legacy_records(session):
    result = services.ImportService(session).import_records(LEGACY_ACTIVE)
    assert result['created'] == 2
    assert result['skipped'] == 0
    assert [e['index'] for e in result['errors']] == [2, 3]

    home = session.get(models.Project, 'p-1')
    assert home.slug == 'home-page'
    assert home.client_label == 'Acme'
    assert models.as_utc(home.created_at).isoformat() == '2024-05-01T10:00:00+00:00'
    assert home.deleted_at is None
    assert session.get(models.Project, 'p-2').client_label == models.UNCATEGORIZED
    assert session.exec(select(models.Client.client_label)).all() == ['Acme']

    # re-running skips ids that already exist
    again = services.ImportService(session).import_records(LEGACY_ACTIVE[:2])
    assert again == {'created': 0, 'skipped': 2, 'errors': []}


def test_import_deleted_batch_and_replace(session):
    svc = services.ImportService(session)
    svc.import_records([{'id': 'old', 'name': 'Old', 'figmaUrl': FIGMA}])
    result = svc.import_records(
        [{'id': 'd-1', 'name': 'Gone', 'figmaUrl': FIGMA, 'deletedAt': '2024-06-01T00:00:00Z'},
         {'id': 'd-2', 'name': 'Gone Too', 'figmaUrl': FIGMA}],
        deleted=True,
    )
    assert result['created'] == 2
    assert session.get(models.Project, 'd-1').deleted_at is not None
    assert session.get(models.Project, 'd-2').deleted_at is not None

    svc.import_records([{'id': 'new', 'name': 'New', 'figmaUrl': FIGMA}], replace=True)
    session.expire_all()
    ids = session.exec(select(models.Project.id)).all()
    assert ids == ['new']


def test_import_reports_bad_timestamps(session):
    result = services.ImportService(session).import_records(
        [{'id': 'x', 'name': 'X', 'figmaUrl': FIGMA, 'createdAt': 'yesterday'}]
    )
    assert result['created'] == 0
    assert 'invalid timestamp' in result['errors'][0]['error']


def test_sliding_window_limiter():
    now = [100.0]
    limiter = SlidingWindowLimiter(max_hits=2, window_seconds=60, clock=lambda: now[0])
    assert limiter.hit('a') is None
    assert limiter.hit('a') is None
    assert limiter.hit('a') == 60
    # other keys are independent
    assert limiter.hit('b') is None
    now[0] += 30
    assert limiter.hit('a') == 30
    now[0] += 31
    assert limiter.hit('a') is None
    limiter.reset()
    assert limiter.hit('a') is None
    assert SlidingWindowLimiter(max_hits=0).hit('a') is None


def test_track_view_is_rate_limited(auth_headers, monkeypatch):
    monkeypatch.setattr(main, '_view_limiter', SlidingWindowLimiter(max_hits=2, window_seconds=60))
    r = client.post('/api/projects', json={'name': 'Home', 'figma_url': FIGMA}, headers=auth_headers)
    body = {'project_id': r.json()['id'], 'project_slug': 'home'}
    assert client.post('/api/track-view', json=body).status_code == 200
    assert client.post('/api/track-view', json=body).status_code == 200
    r = client.post('/api/track-view', json=body)
    assert r.status_code == 429
    assert int(r.headers['Retry-After']) >= 1

    # the viewer still renders but stops recording views
    assert client.get('/p/home').status_code == 200


def test_import_renames_slugs_held_by_active_projects(auth_headers, session):
    r = client.post('/api/projects', json={'name': 'Home', 'figma_url': FIGMA}, headers=auth_headers)
    assert r.json()['slug'] == 'home'
    result = services.ImportService(session).import_records([
        {'id': 'x', 'name': 'Home', 'slug': 'home', 'figmaUrl': FIGMA},
        {'id': 'y', 'name': 'Dup', 'slug': 'dup', 'figmaUrl': FIGMA},
        {'id': 'z', 'name': 'Dup Again', 'slug': 'dup', 'figmaUrl': FIGMA},
    ])
    assert result['created'] == 3
    assert session.get(models.Project, 'x').slug == 'home-1'
    assert session.get(models.Project, 'y').slug == 'dup'
    assert session.get(models.Project, 'z').slug == 'dup-1'

    active = session.exec(select(models.Project.slug).where(models.Project.deleted_at.is_(None))).all()
    assert len(active) == len(set(active))
    assert client.get('/p/home-1').status_code == 200


def test_import_keeps_slugs_of_deleted_records(auth_headers, session):
    client.post('/api/projects', json={'name': 'Home', 'figma_url': FIGMA}, headers=auth_headers)
    services.ImportService(session).import_records(
        [{'id': 'gone', 'name': 'Home', 'slug': 'home', 'figmaUrl': FIGMA}], deleted=True
    )
    assert session.get(models.Project, 'gone').slug == 'home'
