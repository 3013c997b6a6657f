"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and auxiliary logic. Services are intentionally thin: they validate
input, apply the project/client/share-link rules and persist through
repositories. Failures are reported with the exceptions in `errors`.
"""

import logging
import secrets
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

import jwt
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .errors import AccessDeniedError, ConflictError, ExpiredError, NotFoundError, ServiceError
from .utils.slugs import slugify, unique_slug

logger = logging.getLogger("protoshare.services")

SHARE_TOKEN_BYTES = 8
DEFAULT_ANALYTICS_DAYS = 90
MAX_ANALYTICS_DAYS = 365
STATE_TOKEN_MINUTES = 10


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = models.as_utc(value)
    return value.isoformat() if value else None


def project_payload(p: models.Project) -> dict:
    return {
        'id': p.id,
        'name': p.name,
        'slug': p.slug,
        'figma_url': p.figma_url,
        'client_label': p.client_label,
        'created_at': _iso(p.created_at),
        'deleted_at': _iso(p.deleted_at),
    }


def share_link_payload(link: models.ShareLink, base_url: Optional[str] = None) -> dict:
    out = {
        'id': link.id,
        'token': link.token,
        'client_label': link.client_label,
        'expires_at': _iso(link.expires_at),
        'created_at': _iso(link.created_at),
    }
    if base_url is not None:
        out['url'] = f"{base_url.rstrip('/')}/share/{link.token}"
    return out


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ''


def _label_or_default(value: Optional[str]) -> str:
    return _clean(value) or models.UNCATEGORIZED


class AuthService:
    """Sign-in bookkeeping and session/state token handling."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    @staticmethod
    def email_allowed(email: str) -> bool:
        if not settings.ALLOWED_EMAIL_DOMAINS:
            return True
        domain = email.rsplit('@', 1)[-1].lower()
        return domain in settings.ALLOWED_EMAIL_DOMAINS

    def login(self, profile: Dict) -> models.User:
        """Create or update the user for an OAuth profile.

        The profile must carry a verified email from an allowed domain,
        otherwise `AccessDeniedError` is raised.
        """
        email = _clean(profile.get('email')).lower()
        if not email or not profile.get('email_verified'):
            raise AccessDeniedError('a verified email address is required')
        if not self.email_allowed(email):
            logger.warning("sign-in refused for %s", email)
            raise AccessDeniedError('email domain not allowed')
        google_id = profile.get('google_id')
        user = None
        if google_id:
            user = self.user_repo.get_by_google_id(google_id)
        if not user:
            user = self.user_repo.get_by_email(email)
        if not user:
            user = models.User(email=email)
        user.email = email
        user.google_id = google_id or user.google_id
        user.name = profile.get('name') or user.name
        user.avatar_url = profile.get('avatar_url') or user.avatar_url
        user.last_login_at = models.utcnow()
        return self.user_repo.save(user)

    @staticmethod
    def create_session_token(user: models.User) -> str:
        expire = models.utcnow() + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "email": user.email, "exp": int(expire.timestamp())}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def create_state(callback_url: str) -> str:
        """Sign the post-login redirect path into an OAuth `state` value."""
        expire = models.utcnow() + timedelta(minutes=STATE_TOKEN_MINUTES)
        payload = {
            "purpose": "oauth_state",
            "callback_url": callback_url,
            "nonce": secrets.token_hex(8),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def read_state(state: str) -> str:
        """Verify an OAuth `state` value and return its callback path."""
        try:
            payload = jwt.decode(state, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except jwt.PyJWTError:
            raise ServiceError('invalid or expired OAuth state')
        if payload.get('purpose') != 'oauth_state':
            raise ServiceError('invalid OAuth state')
        return safe_callback_path(payload.get('callback_url'))


def safe_callback_path(value: Optional[str]) -> str:
    """Keep post-login redirects on this site: only absolute local paths."""
    value = _clean(value)
    if not value.startswith('/') or value.startswith('//'):
        return '/'
    return value


class ProjectService:
    """Create, rename, relabel and soft-delete projects."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.ProjectRepository(session)
        self.client_repo = repositories.ClientRepository(session)

    def get(self, project_id: str) -> models.Project:
        p = self.repo.get(project_id)
        if not p:
            raise NotFoundError('Project not found')
        return p

    def get_active_by_slug(self, slug: str) -> models.Project:
        p = self.repo.get_active_by_slug(slug)
        if not p:
            raise NotFoundError('Project not found')
        return p

    def list_active(self) -> List[models.Project]:
        return self.repo.list_active()

    def list_deleted(self) -> List[models.Project]:
        return self.repo.list_deleted()

    def create(self, name: Optional[str], figma_url: Optional[str], client_label: Optional[str] = None) -> models.Project:
        """Create a project with a slug that no existing project uses.

        Soft-deleted projects keep their slugs reserved, so collisions are
        checked against every row and resolved with `-1`, `-2`, ...
        """
        name = _clean(name)
        figma_url = _clean(figma_url)
        if not name or not figma_url:
            raise ServiceError('Missing required fields')
        base = slugify(name)
        slug = unique_slug(base, self.repo.slugs_with_prefix(base))
        label = _label_or_default(client_label)
        if label != models.UNCATEGORIZED:
            self.client_repo.ensure(label, commit=False)
        project = models.Project(name=name, slug=slug, figma_url=figma_url, client_label=label)
        return self.repo.save(project)

    def update_label(self, project_id: str, client_label: Optional[str]) -> models.Project:
        p = self.get(project_id)
        label = _label_or_default(client_label)
        if label != models.UNCATEGORIZED:
            self.client_repo.ensure(label, commit=False)
        p.client_label = label
        return self.repo.save(p)

    def rename(self, project_id: str, name: Optional[str]) -> dict:
        """Rename a project and regenerate its slug.

        Unlike creation, a collision with another active project is an
        error rather than a reason to add a suffix.
        """
        name = _clean(name)
        if not name:
            raise ServiceError('Project name is required')
        p = self.get(project_id)
        new_slug = slugify(name)
        if self.repo.active_slug_taken(new_slug, exclude_id=p.id):
            raise ConflictError('A project with this name already exists')
        old_slug = p.slug
        p.name = name
        p.slug = new_slug
        p = self.repo.save(p)
        return {'project': p, 'old_slug': old_slug, 'new_slug': new_slug}

    def soft_delete(self, project_id: str) -> models.Project:
        p = self.get(project_id)
        p.deleted_at = models.utcnow()
        return self.repo.save(p)

    def _prepare_restore(self, p: models.Project) -> None:
        # an active project may have taken the slug since the delete
        if self.repo.active_slug_taken(p.slug, exclude_id=p.id):
            stamp = int(models.utcnow().timestamp() * 1000)
            p.slug = f"{p.slug}-restored-{stamp}"
        p.deleted_at = None

    def restore(self, project_id: str) -> models.Project:
        p = self.repo.get(project_id)
        if not p or p.deleted_at is None:
            raise NotFoundError('Deleted project not found')
        self._prepare_restore(p)
        return self.repo.save(p)

    def restore_many(self, projects: List[models.Project]) -> int:
        """Restore several deleted projects, one slug check at a time."""
        restored = 0
        for p in projects:
            self._prepare_restore(p)
            # flush so the next conflict check sees this project as active
            self.session.add(p)
            self.session.flush()
            restored += 1
        self.session.commit()
        return restored

    def delete_permanently(self, project_id: str) -> models.Project:
        p = self.get(project_id)
        if p.deleted_at is None:
            raise ServiceError('Project must be soft deleted first')
        self.repo.delete_permanently([p])
        return p


class ClientService:
    """Operations keyed by client label rather than by project."""
    def __init__(self, session: Session):
        self.session = session
        self.project_repo = repositories.ProjectRepository(session)
        self.client_repo = repositories.ClientRepository(session)
        self.share_repo = repositories.ShareLinkRepository(session)
        self.projects = ProjectService(session)

    def list_labels(self) -> List[str]:
        labels = {label for label in self.project_repo.active_labels() if label and label != models.UNCATEGORIZED}
        return sorted(labels)

    def summaries(self) -> List[dict]:
        """Active project count and description for every client label."""
        counts = self.project_repo.count_active_by_label()
        out = []
        for label in sorted(counts):
            if not label or label == models.UNCATEGORIZED:
                continue
            client = self.client_repo.get_by_label(label)
            out.append({
                'client_label': label,
                'project_count': counts[label],
                'description': client.description if client else None,
            })
        return out

    def deleted_summaries(self) -> List[dict]:
        return [
            {'client_label': label, 'deleted_count': count, 'last_deleted_at': _iso(last)}
            for label, count, last in self.project_repo.deleted_summary_by_label()
        ]

    def rename(self, old_label: Optional[str], new_label: Optional[str]) -> dict:
        """Move every project (and the label's metadata and links) to a new label."""
        old_label = _clean(old_label)
        new_label = _clean(new_label)
        if not old_label or not new_label:
            raise ServiceError('Both old and new client names are required')
        if new_label != old_label and self.project_repo.active_label_exists(new_label):
            raise ConflictError('A client with this name already exists')
        projects = self.project_repo.list_by_label(old_label)
        for p in projects:
            p.client_label = new_label
            self.session.add(p)
        if new_label != old_label:
            old_client = self.client_repo.get_by_label(old_label)
            if old_client and new_label != models.UNCATEGORIZED and not self.client_repo.get_by_label(new_label):
                old_client.client_label = new_label
                old_client.updated_at = models.utcnow()
                self.session.add(old_client)
            for link in self.share_repo.list_for_client(old_label):
                link.client_label = new_label
                self.session.add(link)
        self.session.commit()
        return {'updated_count': len(projects), 'old_name': old_label, 'new_name': new_label}

    def soft_delete(self, client_label: str) -> int:
        now = models.utcnow()
        projects = self.project_repo.list_active(client_label)
        for p in projects:
            p.deleted_at = now
        return self.project_repo.save_all(projects)

    def deleted_projects(self, client_label: str) -> List[models.Project]:
        return self.project_repo.list_deleted(client_label)

    def restore_all(self, client_label: str) -> int:
        return self.projects.restore_many(self.project_repo.list_deleted(client_label))

    def restore_selected(self, client_label: str, project_ids) -> int:
        if not isinstance(project_ids, list) or not project_ids:
            raise ServiceError('Invalid project IDs')
        wanted = {str(pid) for pid in project_ids}
        selected = [p for p in self.project_repo.list_deleted(client_label) if p.id in wanted]
        return self.projects.restore_many(selected)

    def delete_permanently(self, client_label: str) -> int:
        return self.project_repo.delete_permanently(self.project_repo.list_deleted(client_label))

    def get_description(self, client_label: str) -> Optional[str]:
        client = self.client_repo.get_by_label(client_label)
        return client.description if client else None

    def set_description(self, client_label: str, description: Optional[str]) -> models.Client:
        return self.client_repo.set_description(client_label, description)

    def sync(self) -> List[str]:
        """Ensure a `Client` row exists for every label used by any project."""
        labels = sorted({label for label in self.project_repo.all_labels() if label and label != models.UNCATEGORIZED})
        for label in labels:
            self.client_repo.ensure(label, commit=False)
        self.session.commit()
        return labels


class ShareService:
    """Issue, resolve and revoke client share links."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.ShareLinkRepository(session)
        self.project_repo = repositories.ProjectRepository(session)

    def _new_token(self) -> str:
        while True:
            token = secrets.token_hex(SHARE_TOKEN_BYTES)
            if not self.repo.token_exists(token):
                return token

    def create(self, client_label: Optional[str], expires_in_days: Optional[int] = None, created_by: Optional[str] = None) -> models.ShareLink:
        client_label = _clean(client_label)
        if not client_label:
            raise ServiceError('Client label is required')
        expires_at = None
        if expires_in_days and expires_in_days > 0:
            expires_at = models.utcnow() + timedelta(days=expires_in_days)
        link = models.ShareLink(
            token=self._new_token(),
            client_label=client_label,
            expires_at=expires_at,
            created_by=created_by,
        )
        return self.repo.create(link)

    def list_for_client(self, client_label: Optional[str]) -> List[models.ShareLink]:
        client_label = _clean(client_label)
        if not client_label:
            raise ServiceError('Client label is required')
        return self.repo.list_for_client(client_label)

    def resolve(self, token: str) -> models.ShareLink:
        """Return the link for `token`, rejecting unknown and expired ones."""
        link = self.repo.get_by_token(token)
        if not link:
            raise NotFoundError('Share link not found')
        expires_at = models.as_utc(link.expires_at)
        if expires_at and expires_at < models.utcnow():
            raise ExpiredError('Share link has expired')
        return link

    def shared_projects(self, token: str) -> tuple:
        link = self.resolve(token)
        return link, self.project_repo.list_active(link.client_label)

    def revoke(self, token: str) -> None:
        link = self.repo.get_by_token(token)
        if not link:
            raise NotFoundError('Share link not found')
        self.repo.delete(link)


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValueError(f'invalid timestamp: {value!r}')
    return models.as_utc(parsed)


class ImportService:
    """Import projects exported from the legacy JSON store."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.ProjectRepository(session)
        self.client_repo = repositories.ClientRepository(session)

    def import_records(self, records: List[dict], deleted: bool = False, replace: bool = False) -> dict:
        """Create projects from legacy `{id, name, slug, figmaUrl, ...}` dicts.

        Records keep their id and timestamps, and their slug unless an
        active project already uses it, in which case it gets a numbered
        suffix as on create. Items with missing fields are reported and
        items whose id already exists are skipped;
        `deleted` marks a batch taken from the deleted-projects file.
        Returns `{created, skipped, errors}`.
        """
        if replace:
            self.repo.delete_permanently(self.repo.list_all())
        created = 0
        skipped = 0
        errors = []
        for idx, rec in enumerate(records):
            try:
                project = self._to_project(rec, deleted)
            except ValueError as e:
                errors.append({'index': idx, 'error': str(e)})
                continue
            if self.repo.get(project.id):
                skipped += 1
                continue
            if project.deleted_at is None and self.repo.active_slug_taken(project.slug):
                # earlier items of this batch are visible through autoflush
                base = project.slug
                project.slug = unique_slug(base, self.repo.slugs_with_prefix(base))
                logger.info("imported project %s renamed from slug %s to %s", project.id, base, project.slug)
            if project.client_label != models.UNCATEGORIZED:
                self.client_repo.ensure(project.client_label, commit=False)
            self.session.add(project)
            created += 1
        self.session.commit()
        return {'created': created, 'skipped': skipped, 'errors': errors}

    def _to_project(self, rec: dict, deleted: bool) -> models.Project:
        if not isinstance(rec, dict):
            raise ValueError('project item must be an object')
        name = _clean(rec.get('name'))
        figma_url = _clean(rec.get('figmaUrl') or rec.get('figma_url'))
        if not name or not figma_url:
            raise ValueError('missing name or figmaUrl')
        project = models.Project(
            name=name,
            slug=_clean(rec.get('slug')) or slugify(name),
            figma_url=figma_url,
            client_label=_label_or_default(rec.get('clientLabel') or rec.get('client_label')),
        )
        if rec.get('id'):
            project.id = str(rec['id'])
        created_at = _parse_timestamp(rec.get('createdAt') or rec.get('created_at'))
        if created_at:
            project.created_at = created_at
        if deleted:
            project.deleted_at = _parse_timestamp(rec.get('deletedAt') or rec.get('deleted_at')) or models.utcnow()
        return project


class AnalyticsService:
    """Record views and build per-day view series."""
    def __init__(self, session: Session):
        self.session = session
        self.view_repo = repositories.ViewRepository(session)
        self.project_repo = repositories.ProjectRepository(session)

    def track(self, project_id: Optional[str], project_slug: Optional[str], user_agent: Optional[str] = None,
              referer: Optional[str] = None, ip_address: Optional[str] = None) -> models.ProjectView:
        project_id = _clean(project_id)
        project_slug = _clean(project_slug)
        if not project_id or not project_slug:
            raise ServiceError('Missing project_id or project_slug')
        if not self.project_repo.get(project_id):
            raise NotFoundError('Project not found')
        view = models.ProjectView(
            project_id=project_id,
            project_slug=project_slug,
            user_agent=user_agent,
            referer=referer,
            ip_address=ip_address,
        )
        return self.view_repo.create(view)

    @staticmethod
    def window(days: Optional[int], today: Optional[date] = None) -> List[date]:
        """The `days` calendar days (UTC) ending today, oldest first."""
        if days is None:
            days = DEFAULT_ANALYTICS_DAYS
        if days < 1 or days > MAX_ANALYTICS_DAYS:
            raise ServiceError(f'days must be between 1 and {MAX_ANALYTICS_DAYS}')
        today = today or models.utcnow().date()
        return [today - timedelta(days=days - 1 - i) for i in range(days)]

    def _series(self, projects: List[models.Project], dates: List[date]) -> List[dict]:
        since = datetime.combine(dates[0], time(), tzinfo=timezone.utc)
        project_id = projects[0].id if len(projects) == 1 else None
        counts: Dict[str, Dict[str, int]] = {}
        for pid, day, count in self.view_repo.daily_counts(since, project_id=project_id):
            counts.setdefault(pid, {})[str(day)[:10]] = int(count)
        out = []
        for p in projects:
            per_day = counts.get(p.id, {})
            views = [{'date': d.isoformat(), 'views': per_day.get(d.isoformat(), 0)} for d in dates]
            out.append({
                'project_id': p.id,
                'project_name': p.name,
                'project_slug': p.slug,
                'client_label': p.client_label,
                'views': views,
                'total_views': sum(v['views'] for v in views),
            })
        return out

    def overview(self, days: Optional[int] = None, today: Optional[date] = None) -> dict:
        dates = self.window(days, today)
        projects = sorted(self.project_repo.list_active(), key=lambda p: p.client_label)
        series = self._series(projects, dates)
        # stable sort keeps label order among equal totals
        series.sort(key=lambda s: s['total_views'], reverse=True)
        return {
            'projects': series,
            'date_range': {'start': dates[0].isoformat(), 'end': dates[-1].isoformat(), 'days': len(dates)},
        }

    def for_project(self, project_id: str, days: Optional[int] = None, today: Optional[date] = None) -> dict:
        dates = self.window(days, today)
        p = self.project_repo.get(project_id)
        if not p or p.deleted_at is not None:
            raise NotFoundError('Project not found')
        return {
            **self._series([p], dates)[0],
            'date_range': {'start': dates[0].isoformat(), 'end': dates[-1].isoformat(), 'days': len(dates)},
        }
