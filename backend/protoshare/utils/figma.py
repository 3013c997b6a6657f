"""Figma REST API client used for project thumbnails.

Only two endpoints are needed: `/v1/images/{key}` when the prototype URL
points at a specific node, and `/v1/files/{key}` (which carries a
`thumbnailUrl` for the whole file) otherwise.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, parse_qsl, urlencode, urlparse

import httpx

from ..config import settings
from ..errors import ServiceError, UpstreamError

logger = logging.getLogger("protoshare.figma")

_FILE_KEY_RE = re.compile(r"figma\.com/(file|proto|design)/([A-Za-z0-9]+)")


class InvalidFigmaUrl(ServiceError):
    pass


class FigmaNotConfigured(ServiceError):
    pass


class ThumbnailUnavailable(ServiceError):
    pass


def extract_file_id(url: str) -> Optional[str]:
    """Return the file key of a Figma file/proto/design URL, or None."""
    if not url:
        return None
    match = _FILE_KEY_RE.search(url)
    if match:
        return match.group(2)
    return None


def extract_node_id(url: str) -> Optional[str]:
    """Return the `node-id` query value in API form (`1:2`), or None."""
    try:
        query = parse_qs(urlparse(url).query)
    except ValueError:
        return None
    values = query.get("node-id")
    if not values or not values[0].strip():
        return None
    return values[0].strip().replace("-", ":")


class FigmaClient:
    """Thin synchronous wrapper over the Figma REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.token = settings.FIGMA_ACCESS_TOKEN if token is None else token
        self.base_url = (base_url or settings.FIGMA_API_BASE).rstrip("/")
        self.timeout = settings.FIGMA_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def _get(self, path: str, params: Optional[dict] = None) -> Dict[str, Any]:
        if not self.configured:
            raise FigmaNotConfigured("FIGMA_ACCESS_TOKEN environment variable is required for thumbnail generation")
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
                response = client.get(path, params=params, headers={"X-Figma-Token": self.token})
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Figma API error: %s %s", e.response.status_code, e.response.text[:200])
            raise UpstreamError(f"Figma API returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("Figma API request failed: %s", e)
            raise UpstreamError("Figma API unreachable") from e

    def _file_key(self, figma_url: str) -> str:
        file_id = extract_file_id(figma_url)
        if not file_id:
            raise InvalidFigmaUrl("Invalid Figma URL format")
        return file_id

    def thumbnail(self, figma_url: str) -> Dict[str, Optional[str]]:
        """Return `{url, file_id, node_id}` for a prototype's preview image.

        Raises `ThumbnailUnavailable` when Figma answers but has no image.
        """
        file_id = self._file_key(figma_url)
        node_id = extract_node_id(figma_url)
        if node_id:
            data = self._get(f"/v1/images/{file_id}", params={"ids": node_id, "format": "png", "scale": 2})
            image_url = (data.get("images") or {}).get(node_id)
        else:
            data = self._get(f"/v1/files/{file_id}", params={"depth": 1})
            image_url = data.get("thumbnailUrl")
        if not image_url:
            logger.warning("No thumbnail images available for Figma file: %s", file_id)
            raise ThumbnailUnavailable("Unable to generate thumbnail")
        return {"url": image_url, "file_id": file_id, "node_id": node_id}

    def file_info(self, figma_url: str) -> Dict[str, Any]:
        """Return Figma file metadata (name, last modified, thumbnail, ...)."""
        file_id = self._file_key(figma_url)
        return self._get(f"/v1/files/{file_id}", params={"depth": 1})


def embed_url(figma_url: str, host: str) -> str:
    """Convert a Figma link into a URL suitable for an iframe.

    Prototype links keep their path and gain embed parameters; file and
    design links go through Figma's generic embed endpoint. Anything else
    is returned unchanged.
    """
    parsed = urlparse(figma_url)
    if "figma.com" not in parsed.netloc:
        return figma_url
    if parsed.path.startswith("/proto/"):
        query = dict(parse_qsl(parsed.query))
        query["embed-host"] = host
        query["hide-ui"] = "1"
        return parsed._replace(query=urlencode(query)).geturl()
    if parsed.path.startswith(("/file/", "/design/")):
        return str(httpx.URL("https://www.figma.com/embed", params={"embed_host": host, "url": figma_url}))
    return figma_url
