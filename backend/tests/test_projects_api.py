from fastapi.testclient import TestClient
from sqlmodel import select

from protoshare.main import app
from protoshare import models

client = TestClient(app)

FIGMA = 'https://www.figma.com/proto/AbC123/Checkout?node-id=1-2'


def _create(headers, name='Checkout Flow', label=None):
    body = {'name': name, 'figma_url': FIGMA}
    if label is not None:
        body['client_label'] = label
    r = client.post('/api/projects', json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_projects_require_authentication():
    assert client.get('/api/projects').status_code == 401
    r = client.post('/api/projects', json={'name': 'x', 'figma_url': FIGMA})
    assert r.status_code == 401
    bad = {'Authorization': 'Bearer invalid.token.here'}
    assert client.get('/api/projects', headers=bad).status_code == 401


def test_create_and_list_projects(auth_headers):
    first = _create(auth_headers, 'Checkout Flow', 'Acme')
    assert first['slug'] == 'checkout-flow'
    assert first['client_label'] == 'Acme'
    assert first['deleted_at'] is None
    second = _create(auth_headers, 'Onboarding')
    assert second['client_label'] == models.UNCATEGORIZED

    r = client.get('/api/projects', headers=auth_headers)
    assert r.status_code == 200
    names = [p['name'] for p in r.json()['projects']]
    # newest first
    assert names == ['Onboarding', 'Checkout Flow']

    r = client.get(f"/api/projects/{first['id']}", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()['figma_url'] == FIGMA


def test_create_requires_name_and_url(auth_headers):
    r = client.post('/api/projects', json={'name': '  ', 'figma_url': FIGMA}, headers=auth_headers)
    assert r.status_code == 400
    assert r.json()['detail'] == 'Missing required fields'
    r = client.post('/api/projects', json={'name': 'Thing'}, headers=auth_headers)
    assert r.status_code == 400


def test_create_registers_client_metadata(auth_headers, session):
    _create(auth_headers, 'Checkout Flow', 'Acme')
    _create(auth_headers, 'Loose')
    labels = session.exec(select(models.Client.client_label)).all()
    assert labels == ['Acme']


def test_duplicate_names_get_numbered_slugs(auth_headers):
    a = _create(auth_headers, 'My App')
    b = _create(auth_headers, 'My App')
    assert (a['slug'], b['slug']) == ('my-app', 'my-app-1')
    # a soft-deleted project still holds its slug
    client.delete(f"/api/projects/{a['id']}", headers=auth_headers)
    c = _create(auth_headers, 'my app!')
    assert c['slug'] == 'my-app-2'


def test_unknown_project_is_404(auth_headers):
    r = client.get('/api/projects/does-not-exist', headers=auth_headers)
    assert r.status_code == 404
    assert r.json()['detail'] == 'Project not found'


def test_update_label_defaults_to_uncategorized(auth_headers):
    p = _create(auth_headers, 'Checkout Flow', 'Acme')
    r = client.patch(f"/api/projects/{p['id']}/label", json={'client_label': 'Globex'}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()['project']['client_label'] == 'Globex'
    r = client.patch(f"/api/projects/{p['id']}/label", json={'client_label': '   '}, headers=auth_headers)
    assert r.json()['project']['client_label'] == models.UNCATEGORIZED


def test_rename_changes_slug_and_rejects_active_conflicts(auth_headers):
    a = _create(auth_headers, 'Checkout Flow')
    b = _create(auth_headers, 'Onboarding')
    r = client.patch(f"/api/projects/{a['id']}/rename", json={'name': 'Checkout v2'}, headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body['old_slug'] == 'checkout-flow'
    assert body['new_slug'] == 'checkout-v2'
    assert body['project']['name'] == 'Checkout v2'

    r = client.patch(f"/api/projects/{b['id']}/rename", json={'name': 'Checkout  V2'}, headers=auth_headers)
    assert r.status_code == 409

    r = client.patch(f"/api/projects/{b['id']}/rename", json={'name': ''}, headers=auth_headers)
    assert r.status_code == 400

    # renaming to its own slug is not a conflict
    r = client.patch(f"/api/projects/{b['id']}/rename", json={'name': 'ONBOARDING'}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()['new_slug'] == 'onboarding'


def test_soft_delete_and_restore(auth_headers):
    p = _create(auth_headers, 'Checkout Flow')
    r = client.delete(f"/api/projects/{p['id']}", headers=auth_headers)
    assert r.status_code == 200
    assert client.get('/api/projects', headers=auth_headers).json()['projects'] == []

    deleted = client.get('/api/projects/deleted', headers=auth_headers).json()
    assert [d['id'] for d in deleted] == [p['id']]
    assert deleted[0]['deleted_at'] is not None

    r = client.post(f"/api/projects/{p['id']}/restore", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()['project']['slug'] == 'checkout-flow'
    assert r.json()['project']['deleted_at'] is None
    assert client.get('/api/projects/deleted', headers=auth_headers).json() == []

    # restoring an active project is not possible
    assert client.post(f"/api/projects/{p['id']}/restore", headers=auth_headers).status_code == 404


def test_restore_renames_slug_taken_in_the_meantime(auth_headers):
    old = _create(auth_headers, 'Checkout Flow')
    client.delete(f"/api/projects/{old['id']}", headers=auth_headers)
    newer = _create(auth_headers, 'Other')
    client.patch(f"/api/projects/{newer['id']}/rename", json={'name': 'Checkout Flow'}, headers=auth_headers)

    r = client.post(f"/api/projects/{old['id']}/restore", headers=auth_headers)
    assert r.status_code == 200
    slug = r.json()['project']['slug']
    assert slug.startswith('checkout-flow-restored-')
    assert slug.rsplit('-', 1)[1].isdigit()


def test_permanent_delete_only_after_soft_delete(auth_headers, session):
    p = _create(auth_headers, 'Checkout Flow')
    r = client.delete(f"/api/projects/{p['id']}/permanent-delete", headers=auth_headers)
    assert r.status_code == 400

    client.get('/p/checkout-flow')
    client.delete(f"/api/projects/{p['id']}", headers=auth_headers)
    r = client.delete(f"/api/projects/{p['id']}/permanent-delete", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()['freed_slug'] == 'checkout-flow'
    assert r.json()['freed_name'] == 'Checkout Flow'
    assert client.get(f"/api/projects/{p['id']}", headers=auth_headers).status_code == 404
    assert session.exec(select(models.ProjectView)).all() == []

    # the slug is free again
    assert _create(auth_headers, 'Checkout Flow')['slug'] == 'checkout-flow'


def test_client_labels_listing(auth_headers):
    _create(auth_headers, 'A', 'Globex')
    _create(auth_headers, 'B', 'Acme')
    _create(auth_headers, 'C', 'Acme')
    _create(auth_headers, 'D')
    gone = _create(auth_headers, 'E', 'Initech')
    client.delete(f"/api/projects/{gone['id']}", headers=auth_headers)
    r = client.get('/api/projects/clients', headers=auth_headers)
    assert r.json() == {'clients': ['Acme', 'Globex']}


def test_viewer_page_embeds_active_projects_only(auth_headers):
    p = _create(auth_headers, 'Checkout Flow')
    r = client.get('/p/checkout-flow', headers={'host': 'viewer.example.com'})
    assert r.status_code == 200
    assert 'embed-host=viewer.example.com' in r.text
    assert '<title>Checkout Flow | Prototype</title>' in r.text
    assert 'Back to Projects' not in r.text

    r = client.get('/p/checkout-flow?share=abc123')
    assert 'href="/share/abc123"' in r.text

    client.delete(f"/api/projects/{p['id']}", headers=auth_headers)
    r = client.get('/p/checkout-flow')
    assert r.status_code == 404
    assert 'Project Not Found' in r.text
