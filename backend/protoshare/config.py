"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent
DEFAULT_SECRET = "change_me_for_prod"


def _split_csv(raw: str) -> list:
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    PUBLIC_BASE_URL: str
    FIGMA_ACCESS_TOKEN: str
    FIGMA_API_BASE: str
    FIGMA_TIMEOUT_SECONDS: float
    GOOGLE_CLIENT_ID: str
    GOOGLE_CLIENT_SECRET: str
    GOOGLE_REDIRECT_URI: str
    ALLOWED_EMAIL_DOMAINS: list
    SESSION_COOKIE_NAME: str
    TRACK_VIEW_RATE_PER_MIN: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_SECRET)
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
        self.FIGMA_ACCESS_TOKEN = os.getenv("FIGMA_ACCESS_TOKEN", "").strip()
        self.FIGMA_API_BASE = os.getenv("FIGMA_API_BASE", "https://api.figma.com").rstrip("/")
        self.FIGMA_TIMEOUT_SECONDS = float(os.getenv("FIGMA_TIMEOUT_SECONDS", "10"))
        self.GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
        self.GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
        self.GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", "http://localhost:8000/auth/callback")
        self.ALLOWED_EMAIL_DOMAINS = _split_csv(os.getenv("ALLOWED_EMAIL_DOMAINS", ""))
        self.SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session_token")
        self.TRACK_VIEW_RATE_PER_MIN = int(os.getenv("TRACK_VIEW_RATE_PER_MIN", "30"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == DEFAULT_SECRET:
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.JWT_EXPIRE_HOURS <= 0:
            raise RuntimeError("JWT_EXPIRE_HOURS must be positive")

    @property
    def secure_cookies(self) -> bool:
        return self.ENV != "dev"


settings = Settings()
