"""Pydantic request schemas used by the API.

Most fields are optional here; the services reject missing values
with a 400 and a readable message.
"""

from pydantic import BaseModel
from typing import Any, Optional


class ProjectCreate(BaseModel):
    """Payload for creating a project."""
    name: Optional[str] = None
    figma_url: Optional[str] = None
    client_label: Optional[str] = None


class ProjectRename(BaseModel):
    name: Optional[str] = None


class ProjectLabelUpdate(BaseModel):
    client_label: Optional[str] = None


class ClientRename(BaseModel):
    """Rename every project carrying `old_client_label`."""
    old_client_label: Optional[str] = None
    new_client_label: Optional[str] = None


class ClientDescriptionIn(BaseModel):
    description: Optional[str] = None


class RestoreSelected(BaseModel):
    # validated by ClientService.restore_selected
    project_ids: Any = None


class ShareLinkCreate(BaseModel):
    """Request a share link for a client, optionally expiring in N days."""
    client_label: Optional[str] = None
    expires_in_days: Optional[int] = None


class TrackViewIn(BaseModel):
    project_id: Optional[str] = None
    project_slug: Optional[str] = None


class ThumbnailRequest(BaseModel):
    figma_url: Optional[str] = None


class UserOut(BaseModel):
    """Public representation of the signed-in user."""
    id: int
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
