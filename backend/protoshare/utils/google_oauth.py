"""Google OAuth provider used for sign-in."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from ..config import settings
from ..errors import UpstreamError

logger = logging.getLogger("protoshare.oauth")


class GoogleOAuthProvider:
    """Authorization-code flow against Google's OAuth 2.0 endpoints."""

    GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
    GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

    def __init__(self, transport: Optional[httpx.BaseTransport] = None, timeout: float = 10.0):
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.client_secret = settings.GOOGLE_CLIENT_SECRET
        self.redirect_uri = settings.GOOGLE_REDIRECT_URI
        self._transport = transport
        self._timeout = timeout

    def get_authorization_url(self, state: Optional[str] = None) -> str:
        """Generate the Google consent-screen URL."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "prompt": "select_account",
        }
        if state:
            params["state"] = state
        return f"{self.GOOGLE_AUTH_URL}?{urlencode(params)}"

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self._timeout, transport=self._transport)

    def exchange_code_for_tokens(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code for access tokens."""
        with self._client() as client:
            response = client.post(
                self.GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": self.redirect_uri,
                },
            )
            response.raise_for_status()
            return response.json()

    def get_user_info(self, access_token: str) -> Dict[str, Any]:
        with self._client() as client:
            response = client.get(
                self.GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
            return response.json()

    def authenticate(self, code: str) -> Dict[str, Any]:
        """Complete the flow: exchange `code` and fetch the user's profile.

        Raises `UpstreamError` if Google rejects the code or is unreachable.
        """
        try:
            tokens = self.exchange_code_for_tokens(code)
            access_token = tokens.get("access_token")
            if not access_token:
                logger.error("No access token received from token exchange")
                raise UpstreamError("OAuth provider returned no access token")
            user_info = self.get_user_info(access_token)
        except httpx.HTTPStatusError as e:
            logger.error("HTTP error during authentication: %s - %s", e.response.status_code, e.response.text[:200])
            raise UpstreamError("OAuth provider rejected the request") from e
        except httpx.RequestError as e:
            logger.error("Request error during authentication: %s", e)
            raise UpstreamError("OAuth provider unreachable") from e
        return {
            "google_id": user_info.get("sub"),
            "email": user_info.get("email"),
            "email_verified": bool(user_info.get("email_verified", False)),
            "name": user_info.get("name", ""),
            "avatar_url": user_info.get("picture", ""),
        }
