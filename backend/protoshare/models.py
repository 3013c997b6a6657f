"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Timestamps are stored in UTC; SQLite hands them back without tzinfo, so
callers compare through `as_utc`.
"""

import uuid
from typing import List, Optional
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, timezone

UNCATEGORIZED = "Uncategorized"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(SQLModel, table=True):
    """A person who signed in through the OAuth provider.

    Fields:
    - `email`: unique, verified address returned by the provider
    - `google_id`: provider subject id, when known
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    google_id: Optional[str] = Field(default=None, unique=True)
    created_at: datetime = Field(default_factory=utcnow)
    last_login_at: Optional[datetime] = None


class Project(SQLModel, table=True):
    """A named link to a Figma prototype.

    `slug` is unique among active projects (those with `deleted_at` unset);
    soft-deleted projects keep theirs so a restore can reclaim it.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    name: str
    slug: str = Field(index=True)
    figma_url: str
    client_label: str = Field(default=UNCATEGORIZED, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = Field(default=None, index=True)
    views: List['ProjectView'] = Relationship(back_populates='project')


class Client(SQLModel, table=True):
    """Metadata attached to a client label (currently a description)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    client_label: str = Field(index=True, unique=True)
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ShareLink(SQLModel, table=True):
    """Public read access to one client's active projects."""
    id: Optional[int] = Field(default=None, primary_key=True)
    token: str = Field(index=True, unique=True)
    client_label: str = Field(index=True)
    expires_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class ProjectView(SQLModel, table=True):
    """A single view of a project through the public viewer."""
    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: str = Field(foreign_key='project.id', index=True)
    project_slug: str
    viewed_at: datetime = Field(default_factory=utcnow, index=True)
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    ip_address: Optional[str] = None
    project: Optional[Project] = Relationship(back_populates='views')
