"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
projects, clients, share links, views). Repositories return SQLModel
objects and perform commits/refreshes where appropriate.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Set
from sqlmodel import Session, select
from sqlalchemy import func
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, user: models.User) -> models.User:
        """Persist a new or modified user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get_by_google_id(self, google_id: str) -> Optional[models.User]:
        stmt = select(models.User).where(models.User.google_id == google_id)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


class ProjectRepository:
    """Queries and writes for `Project` rows, active and soft-deleted."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, project_id: str) -> Optional[models.Project]:
        return self.session.get(models.Project, project_id)

    def save(self, project: models.Project) -> models.Project:
        self.session.add(project)
        self.session.commit()
        self.session.refresh(project)
        return project

    def save_all(self, projects: Iterable[models.Project]) -> int:
        """Persist several modified projects in one commit; returns the count."""
        count = 0
        for p in projects:
            self.session.add(p)
            count += 1
        self.session.commit()
        return count

    def list_active(self, client_label: Optional[str] = None) -> List[models.Project]:
        """Active projects, newest first, optionally for one client."""
        stmt = select(models.Project).where(models.Project.deleted_at.is_(None))
        if client_label is not None:
            stmt = stmt.where(models.Project.client_label == client_label)
        stmt = stmt.order_by(models.Project.created_at.desc())
        return self.session.exec(stmt).all()

    def list_deleted(self, client_label: Optional[str] = None) -> List[models.Project]:
        """Soft-deleted projects, most recently deleted first."""
        stmt = select(models.Project).where(models.Project.deleted_at.is_not(None))
        if client_label is not None:
            stmt = stmt.where(models.Project.client_label == client_label)
        stmt = stmt.order_by(models.Project.deleted_at.desc())
        return self.session.exec(stmt).all()

    def list_all(self) -> List[models.Project]:
        return self.session.exec(select(models.Project)).all()

    def list_by_label(self, client_label: str) -> List[models.Project]:
        stmt = select(models.Project).where(models.Project.client_label == client_label)
        return self.session.exec(stmt).all()

    def get_active_by_slug(self, slug: str) -> Optional[models.Project]:
        stmt = select(models.Project).where(models.Project.slug == slug, models.Project.deleted_at.is_(None))
        return self.session.exec(stmt).first()

    def active_slug_taken(self, slug: str, exclude_id: Optional[str] = None) -> bool:
        """Return True if an active project other than `exclude_id` uses `slug`."""
        stmt = select(models.Project.id).where(models.Project.slug == slug, models.Project.deleted_at.is_(None))
        if exclude_id is not None:
            stmt = stmt.where(models.Project.id != exclude_id)
        return self.session.exec(stmt).first() is not None

    def slugs_with_prefix(self, base: str) -> Set[str]:
        """All slugs, active or deleted, equal to `base` or starting with `base-`."""
        stmt = select(models.Project.slug).where(
            (models.Project.slug == base) | (models.Project.slug.startswith(f"{base}-"))
        )
        return set(self.session.exec(stmt).all())

    def active_labels(self) -> List[str]:
        stmt = select(models.Project.client_label).where(models.Project.deleted_at.is_(None)).distinct()
        return list(self.session.exec(stmt).all())

    def all_labels(self) -> List[str]:
        stmt = select(models.Project.client_label).distinct()
        return list(self.session.exec(stmt).all())

    def active_label_exists(self, client_label: str) -> bool:
        stmt = select(models.Project.id).where(
            models.Project.client_label == client_label,
            models.Project.deleted_at.is_(None),
        )
        return self.session.exec(stmt).first() is not None

    def count_active_by_label(self) -> dict:
        stmt = (
            select(models.Project.client_label, func.count(models.Project.id))
            .where(models.Project.deleted_at.is_(None))
            .group_by(models.Project.client_label)
        )
        return {label: count for label, count in self.session.exec(stmt).all()}

    def deleted_summary_by_label(self) -> list:
        """(label, deleted count, latest deleted_at) for labels with deleted projects."""
        stmt = (
            select(models.Project.client_label, func.count(models.Project.id), func.max(models.Project.deleted_at))
            .where(models.Project.deleted_at.is_not(None))
            .group_by(models.Project.client_label)
            .order_by(models.Project.client_label)
        )
        return list(self.session.exec(stmt).all())

    def delete_permanently(self, projects: Iterable[models.Project]) -> int:
        """Remove projects together with their recorded views."""
        count = 0
        for p in projects:
            views = self.session.exec(select(models.ProjectView).where(models.ProjectView.project_id == p.id)).all()
            for v in views:
                self.session.delete(v)
            self.session.delete(p)
            count += 1
        self.session.commit()
        return count


class ClientRepository:
    """Upserts and lookups for `Client` metadata rows."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_label(self, client_label: str) -> Optional[models.Client]:
        stmt = select(models.Client).where(models.Client.client_label == client_label)
        return self.session.exec(stmt).first()

    def ensure(self, client_label: str, commit: bool = True) -> models.Client:
        """Insert a row for `client_label` if none exists; never modifies one."""
        existing = self.get_by_label(client_label)
        if existing:
            return existing
        client = models.Client(client_label=client_label)
        self.session.add(client)
        if commit:
            self.session.commit()
            self.session.refresh(client)
        return client

    def set_description(self, client_label: str, description: Optional[str]) -> models.Client:
        client = self.get_by_label(client_label) or models.Client(client_label=client_label)
        client.description = description
        client.updated_at = models.utcnow()
        self.session.add(client)
        self.session.commit()
        self.session.refresh(client)
        return client

    def list_all(self) -> List[models.Client]:
        return self.session.exec(select(models.Client).order_by(models.Client.client_label)).all()


class ShareLinkRepository:
    """CRUD for `ShareLink` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, link: models.ShareLink) -> models.ShareLink:
        self.session.add(link)
        self.session.commit()
        self.session.refresh(link)
        return link

    def get_by_token(self, token: str) -> Optional[models.ShareLink]:
        stmt = select(models.ShareLink).where(models.ShareLink.token == token)
        return self.session.exec(stmt).first()

    def token_exists(self, token: str) -> bool:
        return self.get_by_token(token) is not None

    def list_for_client(self, client_label: str) -> List[models.ShareLink]:
        stmt = (
            select(models.ShareLink)
            .where(models.ShareLink.client_label == client_label)
            .order_by(models.ShareLink.created_at.desc())
        )
        return self.session.exec(stmt).all()

    def delete(self, link: models.ShareLink) -> None:
        self.session.delete(link)
        self.session.commit()


class ViewRepository:
    """Record project views and aggregate them by day."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, view: models.ProjectView) -> models.ProjectView:
        self.session.add(view)
        self.session.commit()
        self.session.refresh(view)
        return view

    def daily_counts(self, since: datetime, project_id: Optional[str] = None) -> list:
        """Return `(project_id, day, count)` rows for views at or after `since`.

        `day` is whatever the database's DATE() returns: a `date` on
        PostgreSQL, an ISO string on SQLite.
        """
        day = func.date(models.ProjectView.viewed_at)
        stmt = select(models.ProjectView.project_id, day, func.count(models.ProjectView.id)).where(
            models.ProjectView.viewed_at >= since
        )
        if project_id is not None:
            stmt = stmt.where(models.ProjectView.project_id == project_id)
        stmt = stmt.group_by(models.ProjectView.project_id, day).order_by(day)
        return list(self.session.exec(stmt).all())
