"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the prototype sharing backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON (or, for the public viewer, HTML) responses.
Domain errors raised by services are turned into JSON by a single
exception handler.

Endpoints implemented:
- GET /auth/login, GET /auth/callback, POST /auth/logout, GET /auth/me
- GET|POST /api/projects, GET /api/projects/{id}, DELETE /api/projects/{id}
- PATCH /api/projects/{id}/label, PATCH /api/projects/{id}/rename
- POST /api/projects/{id}/restore, DELETE /api/projects/{id}/permanent-delete
- GET /api/projects/deleted, GET /api/projects/clients, PATCH /api/projects/clients/rename
- GET /api/clients, GET /api/clients/deleted, POST /api/clients/sync
- DELETE /api/clients/{label}, GET /api/clients/{label}/projects
- POST /api/clients/{label}/restore-all, POST /api/clients/{label}/restore-selected
- DELETE /api/clients/{label}/permanent-delete, GET|PUT /api/clients/{label}/description
- POST /api/share/create, GET /api/share/by-client
- GET|DELETE /api/share/{token}, GET /api/share/{token}/projects
- POST /api/track-view, GET /api/analytics, GET /api/analytics/{project_id}
- GET|POST /api/figma/thumbnail, GET /api/figma/file-info
- GET /p/{slug}, GET /share/{token}, GET /, GET /health
"""

from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, HTMLResponse, RedirectResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
from typing import Optional
import json
import logging
import os
import time
import uuid
from .database import create_db_and_tables, get_session
from . import services, models, pages
from .auth import get_current_user
from .config import settings
from .errors import NotFoundError, ServiceError, ExpiredError
from .schemas import (
    ClientDescriptionIn,
    ClientRename,
    ProjectCreate,
    ProjectLabelUpdate,
    ProjectRename,
    RestoreSelected,
    ShareLinkCreate,
    ThumbnailRequest,
    TrackViewIn,
    UserOut,
)
from .utils.figma import FigmaClient
from .utils.google_oauth import GoogleOAuthProvider
from .utils.rate_limit import SlidingWindowLimiter

app = FastAPI(title="Prototype Share API")
logger = logging.getLogger("protoshare.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

figma_client = FigmaClient()
oauth_provider = GoogleOAuthProvider()
_view_limiter = SlidingWindowLimiter(max_hits=settings.TRACK_VIEW_RATE_PER_MIN, window_seconds=60)

# Dev only: lets a frontend served from another origin call the API.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if request.url.path.startswith(("/api", "/auth")):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("upstream failure on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    # traceback already logged by request_context_middleware
    logger.error("unhandled error on %s %s: %r", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def _request_base_url(request: Request) -> str:
    host = request.headers.get("host") or "localhost:8000"
    proto = request.headers.get("x-forwarded-proto") or "http"
    return f"{proto}://{host}"


# ---------- auth ----------

@app.get('/auth/login')
def login(callback_url: str = '/'):
    """Redirect to Google's consent screen.

    `callback_url` is the local path to return to after sign-in; it is
    carried through the OAuth round trip inside a signed `state` value.
    """
    if not oauth_provider.client_id:
        raise ServiceError('Google OAuth is not configured')
    state = services.AuthService.create_state(services.safe_callback_path(callback_url))
    return RedirectResponse(url=oauth_provider.get_authorization_url(state), status_code=302)


@app.get('/auth/callback')
def oauth_callback(code: Optional[str] = None, state: Optional[str] = None, error: Optional[str] = None,
                   db: Session = Depends(get_session)):
    """Finish the OAuth flow, start a session cookie and redirect back."""
    if error:
        raise ServiceError(f'sign-in failed: {error}')
    if not code or not state:
        raise ServiceError('code and state are required')
    callback_url = services.AuthService.read_state(state)
    profile = oauth_provider.authenticate(code)
    auth = services.AuthService(db)
    user = auth.login(profile)
    token = auth.create_session_token(user)
    logger.info("user signed in: %s", user.email)
    response = RedirectResponse(url=callback_url, status_code=302)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.JWT_EXPIRE_HOURS * 3600,
        httponly=True,
        samesite='lax',
        secure=settings.secure_cookies,
    )
    return response


@app.post('/auth/logout')
def logout():
    response = JSONResponse(content={'status': 'ok'})
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response


@app.get('/auth/me', response_model=UserOut)
def me(user: models.User = Depends(get_current_user)):
    """Return the signed-in user."""
    return UserOut(id=user.id, email=user.email, name=user.name, avatar_url=user.avatar_url)


# ---------- projects ----------

@app.get('/api/projects')
def list_projects(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """List active projects, newest first."""
    projects = services.ProjectService(db).list_active()
    return {'projects': [services.project_payload(p) for p in projects]}


@app.post('/api/projects', status_code=201)
def create_project(payload: ProjectCreate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Create a project; the slug is derived from the name and made unique."""
    p = services.ProjectService(db).create(payload.name, payload.figma_url, payload.client_label)
    logger.info("project created: %s (%s)", p.slug, p.client_label)
    return services.project_payload(p)


@app.get('/api/projects/deleted')
def list_deleted_projects(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """List soft-deleted projects, most recently deleted first."""
    return [services.project_payload(p) for p in services.ProjectService(db).list_deleted()]


@app.get('/api/projects/clients')
def list_client_labels(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Distinct client labels in use by active projects."""
    return {'clients': services.ClientService(db).list_labels()}


@app.patch('/api/projects/clients/rename')
def rename_client(payload: ClientRename, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    result = services.ClientService(db).rename(payload.old_client_label, payload.new_client_label)
    return {'message': 'Client category renamed successfully', **result}


@app.get('/api/projects/{project_id}')
def get_project(project_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.project_payload(services.ProjectService(db).get(project_id))


@app.delete('/api/projects/{project_id}')
def soft_delete_project(project_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Soft delete: the project disappears from listings but can be restored."""
    services.ProjectService(db).soft_delete(project_id)
    return {'message': 'Project deleted successfully'}


@app.patch('/api/projects/{project_id}/label')
def update_project_label(project_id: str, payload: ProjectLabelUpdate, db: Session = Depends(get_session),
                         user: models.User = Depends(get_current_user)):
    p = services.ProjectService(db).update_label(project_id, payload.client_label)
    return {'message': 'Client label updated successfully', 'project': services.project_payload(p)}


@app.patch('/api/projects/{project_id}/rename')
def rename_project(project_id: str, payload: ProjectRename, db: Session = Depends(get_session),
                   user: models.User = Depends(get_current_user)):
    """Rename a project; its slug changes too, so old viewer links stop working."""
    result = services.ProjectService(db).rename(project_id, payload.name)
    return {
        'message': 'Project renamed successfully',
        'project': services.project_payload(result['project']),
        'old_slug': result['old_slug'],
        'new_slug': result['new_slug'],
    }


@app.post('/api/projects/{project_id}/restore')
def restore_project(project_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    p = services.ProjectService(db).restore(project_id)
    return {'message': 'Project restored successfully', 'project': services.project_payload(p)}


@app.delete('/api/projects/{project_id}/permanent-delete')
def permanently_delete_project(project_id: str, db: Session = Depends(get_session),
                               user: models.User = Depends(get_current_user)):
    """Remove a soft-deleted project for good, freeing its slug."""
    p = services.ProjectService(db).delete_permanently(project_id)
    logger.info("project permanently deleted: %s", p.slug)
    return {'message': 'Project permanently deleted successfully', 'freed_slug': p.slug, 'freed_name': p.name}


# ---------- clients ----------

@app.get('/api/clients')
def list_clients(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Client labels with their active project count and description."""
    return {'clients': services.ClientService(db).summaries()}


@app.get('/api/clients/deleted')
def list_deleted_clients(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return {'clients': services.ClientService(db).deleted_summaries()}


@app.post('/api/clients/sync')
def sync_clients(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Backfill a client metadata row for every label used by a project."""
    labels = services.ClientService(db).sync()
    return {'message': 'Clients synced successfully', 'synced': len(labels), 'clients': labels}


@app.delete('/api/clients/{client_label}')
def soft_delete_client(client_label: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    count = services.ClientService(db).soft_delete(client_label)
    return {'success': True, 'deleted_count': count}


@app.get('/api/clients/{client_label}/projects')
def list_client_deleted_projects(client_label: str, db: Session = Depends(get_session),
                                 user: models.User = Depends(get_current_user)):
    """Soft-deleted projects of one client, for selective restore."""
    projects = services.ClientService(db).deleted_projects(client_label)
    return [
        {k: v for k, v in services.project_payload(p).items() if k in ('id', 'name', 'slug', 'created_at', 'deleted_at')}
        for p in projects
    ]


@app.post('/api/clients/{client_label}/restore-all')
def restore_client(client_label: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    count = services.ClientService(db).restore_all(client_label)
    return {'success': True, 'restored_count': count}


@app.post('/api/clients/{client_label}/restore-selected')
def restore_selected_projects(client_label: str, payload: RestoreSelected, db: Session = Depends(get_session),
                              user: models.User = Depends(get_current_user)):
    count = services.ClientService(db).restore_selected(client_label, payload.project_ids)
    return {'success': True, 'restored_count': count}


@app.delete('/api/clients/{client_label}/permanent-delete')
def permanently_delete_client(client_label: str, db: Session = Depends(get_session),
                              user: models.User = Depends(get_current_user)):
    """Permanently delete the client's soft-deleted projects; active ones are untouched."""
    count = services.ClientService(db).delete_permanently(client_label)
    return {'success': True, 'deleted_count': count}


@app.get('/api/clients/{client_label}/description')
def get_client_description(client_label: str, db: Session = Depends(get_session),
                           user: models.User = Depends(get_current_user)):
    return {'description': services.ClientService(db).get_description(client_label)}


@app.put('/api/clients/{client_label}/description')
def set_client_description(client_label: str, payload: ClientDescriptionIn, db: Session = Depends(get_session),
                           user: models.User = Depends(get_current_user)):
    client = services.ClientService(db).set_description(client_label, payload.description)
    return {'client_label': client.client_label, 'description': client.description}


# ---------- share links ----------

@app.post('/api/share/create')
def create_share_link(payload: ShareLinkCreate, db: Session = Depends(get_session),
                      user: models.User = Depends(get_current_user)):
    """Create a share link for a client, optionally expiring after N days."""
    link = services.ShareService(db).create(payload.client_label, payload.expires_in_days, created_by=user.email)
    return {'success': True, 'share_link': services.share_link_payload(link, settings.PUBLIC_BASE_URL)}


@app.get('/api/share/by-client')
def list_share_links(request: Request, client_label: Optional[str] = None, db: Session = Depends(get_session),
                     user: models.User = Depends(get_current_user)):
    links = services.ShareService(db).list_for_client(client_label)
    base = _request_base_url(request)
    return {'success': True, 'share_links': [services.share_link_payload(link, base) for link in links]}


@app.get('/api/share/{token}')
def resolve_share_link(token: str, db: Session = Depends(get_session)):
    """Public: check a share link (404 unknown, 410 expired)."""
    link = services.ShareService(db).resolve(token)
    out = services.share_link_payload(link)
    return {
        'success': True,
        'share_link': {k: out[k] for k in ('client_label', 'expires_at', 'created_at')},
    }


@app.get('/api/share/{token}/projects')
def shared_projects(token: str, db: Session = Depends(get_session)):
    """Public: the active projects visible through a share link."""
    link, projects = services.ShareService(db).shared_projects(token)
    return {'client_label': link.client_label, 'projects': [services.project_payload(p) for p in projects]}


@app.delete('/api/share/{token}')
def revoke_share_link(token: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    services.ShareService(db).revoke(token)
    return {'success': True, 'message': 'Share link revoked successfully'}


# ---------- views & analytics ----------

@app.post('/api/track-view')
def track_view(payload: TrackViewIn, request: Request, db: Session = Depends(get_session)):
    """Public: record one view of a project (rate limited per client and project)."""
    ip = _client_ip(request)
    retry_after = _view_limiter.hit(f"{ip or 'unknown'}:{payload.project_id}")
    if retry_after is not None:
        raise HTTPException(
            status_code=429,
            detail=f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )
    services.AnalyticsService(db).track(
        payload.project_id,
        payload.project_slug,
        user_agent=request.headers.get('user-agent'),
        referer=request.headers.get('referer'),
        ip_address=ip,
    )
    return {'success': True}


@app.get('/api/analytics')
def analytics(days: Optional[int] = None, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Daily view counts per active project for the last `days` days (default 90)."""
    return services.AnalyticsService(db).overview(days)


@app.get('/api/analytics/{project_id}')
def project_analytics(project_id: str, days: Optional[int] = None, db: Session = Depends(get_session),
                      user: models.User = Depends(get_current_user)):
    return services.AnalyticsService(db).for_project(project_id, days)


# ---------- figma ----------

@app.post('/api/figma/thumbnail')
def figma_thumbnail(payload: ThumbnailRequest, user: models.User = Depends(get_current_user)):
    """Fetch a preview image URL for a Figma link."""
    if not payload.figma_url or not payload.figma_url.strip():
        raise ServiceError('Figma URL is required')
    return {'thumbnail': figma_client.thumbnail(payload.figma_url.strip())}


@app.get('/api/figma/thumbnail')
def figma_thumbnail_query(url: Optional[str] = None, user: models.User = Depends(get_current_user)):
    if not url or not url.strip():
        raise ServiceError('Figma URL parameter is required')
    return {'thumbnail': figma_client.thumbnail(url.strip())}


@app.get('/api/figma/file-info')
def figma_file_info(url: Optional[str] = None, user: models.User = Depends(get_current_user)):
    """Return Figma's metadata for the file behind a link."""
    if not url or not url.strip():
        raise ServiceError('Figma URL parameter is required')
    return figma_client.file_info(url.strip())


# ---------- public pages ----------

@app.get("/", response_class=HTMLResponse)
def home():
    """Minimal homepage for quick manual testing."""
    return pages.index_page()


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


@app.get("/p/{slug}", response_class=HTMLResponse)
def view_prototype(slug: str, request: Request, share: Optional[str] = None,
                   from_page: Optional[str] = Query(default=None, alias="from"),
                   db: Session = Depends(get_session)):
    """Public full-screen prototype viewer; each page load counts as a view."""
    try:
        project = services.ProjectService(db).get_active_by_slug(slug)
    except NotFoundError:
        return HTMLResponse(pages.message_page('Project Not Found', 'This prototype does not exist or was removed.'), status_code=404)
    ip = _client_ip(request)
    if _view_limiter.hit(f"{ip or 'unknown'}:{project.id}") is None:
        services.AnalyticsService(db).track(
            project.id,
            project.slug,
            user_agent=request.headers.get('user-agent'),
            referer=request.headers.get('referer'),
            ip_address=ip,
        )
    host = request.headers.get('host') or 'localhost'
    return pages.viewer_page(project, host.split(':')[0], share=share, from_page=from_page)


@app.get("/share/{token}", response_class=HTMLResponse)
def view_share(token: str, db: Session = Depends(get_session)):
    """Public list of a client's active projects behind a share link."""
    try:
        link, projects = services.ShareService(db).shared_projects(token)
    except ExpiredError:
        return HTMLResponse(pages.message_page('Link Expired', 'This share link has expired and is no longer accessible.'), status_code=410)
    except NotFoundError:
        return HTMLResponse(pages.message_page('Share Link Not Found', 'This share link does not exist.'), status_code=404)
    return pages.share_page(link, projects)
