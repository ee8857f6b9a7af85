"""Configuration models and helpers for the Newsy ingestion and digest jobs."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping

from pydantic import BaseModel, Field, ValidationError, field_validator

__all__ = [
    "DEFAULT_CATEGORIES",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_ENV_PATH",
    "DigestConfig",
    "IngestionConfig",
    "MailConfig",
    "NewsDataConfig",
    "NewsyConfig",
    "ScheduleConfig",
    "StorageConfig",
    "load_config",
    "load_env_file",
    "read_env_file",
]

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "data" / "newsy.json"
DEFAULT_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"

DEFAULT_CATEGORIES = ("technology", "sports", "business", "education", "entertainment")


class NewsDataConfig(BaseModel):
    """Connection settings for the NewsData.io API."""

    api_url: str = Field(default="https://newsdata.io/api/1/latest")
    api_key: str = Field(default="", description="NewsData.io API key")
    language: str = Field(default="en")
    timeout: float = Field(default=30.0, gt=0, description="Read timeout in seconds")


class IngestionConfig(BaseModel):
    """Policy knobs for the per-category ingestion cycle."""

    categories: List[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    fetch_size: int = Field(default=10, ge=1, description="Records requested per category")
    articles_per_category: int = Field(default=4, ge=1, description="Stored articles per category")
    max_article_age_days: int = Field(default=2, ge=0)

    @field_validator("categories")
    @classmethod
    def _normalise_categories(cls, value: List[str]) -> List[str]:
        seen: list[str] = []
        for raw in value:
            name = str(raw).strip().lower()
            if name and name not in seen:
                seen.append(name)
        if not seen:
            raise ValueError("at least one category must be configured")
        return seen


class DigestConfig(BaseModel):
    """Settings for the per-subscriber newsletter digest."""

    subject: str = Field(default="Your Newsy Daily")
    max_articles_per_mail: int = Field(default=8, ge=0)
    articles_per_category: int = Field(default=2, ge=1)


class MailConfig(BaseModel):
    """SMTP settings used by :class:`newsy.services.mailer.EmailService`."""

    smtp_host: str = Field(default="localhost")
    smtp_port: int = Field(default=587)
    username: str | None = None
    password: str | None = None
    use_tls: bool = Field(default=True)
    mail_from: str = Field(default="no-reply@newsy.local")
    mail_from_name: str | None = Field(default="Newsy")
    base_url: str = Field(default="http://localhost:8080", description="Public URL used in mail links")
    timeout: float = Field(default=30.0, gt=0)


class ScheduleConfig(BaseModel):
    """Cron expressions for the two scheduled entry points."""

    enabled: bool = Field(default=True)
    news_fetch_cron: str = Field(default="0 8 * * *")
    newsletter_cron: str = Field(default="0 9 * * *")
    timezone: str = Field(default="UTC")


class StorageConfig(BaseModel):
    blob_root: str | None = Field(
        default=None,
        description="Directory holding articles.json and subscribers.json; package data dir when omitted",
    )


# Environment variable -> (section, field)
_ENV_OVERRIDES: Dict[str, tuple[str, str]] = {
    "NEWSDATA_API_KEY": ("newsdata", "api_key"),
    "NEWSDATA_API_URL": ("newsdata", "api_url"),
    "NEWSY_MAX_ARTICLE_AGE_DAYS": ("ingestion", "max_article_age_days"),
    "NEWSY_MAX_ARTICLES_PER_MAIL": ("digest", "max_articles_per_mail"),
    "SMTP_HOST": ("mail", "smtp_host"),
    "SMTP_PORT": ("mail", "smtp_port"),
    "SMTP_USERNAME": ("mail", "username"),
    "SMTP_PASSWORD": ("mail", "password"),
    "MAIL_FROM": ("mail", "mail_from"),
    "MAIL_FROM_NAME": ("mail", "mail_from_name"),
    "APP_BASE_URL": ("mail", "base_url"),
    "NEWS_FETCH_CRON": ("schedule", "news_fetch_cron"),
    "NEWSLETTER_EMAIL_CRON": ("schedule", "newsletter_cron"),
    "APP_TIMEZONE": ("schedule", "timezone"),
    "NEWSY_BLOB_ROOT": ("storage", "blob_root"),
}


class NewsyConfig(BaseModel):
    """Top level configuration for the Newsy services."""

    newsdata: NewsDataConfig = Field(default_factory=NewsDataConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    digest: DigestConfig = Field(default_factory=DigestConfig)
    mail: MailConfig = Field(default_factory=MailConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @classmethod
    def from_file(cls, path: Path | str | None = None) -> "NewsyConfig":
        """Load configuration data from a JSON file.

        The default location is optional and falls back to built-in defaults;
        an explicitly requested file must exist.
        """

        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            if path is None:
                return cls()
            raise FileNotFoundError(f"Configuration file not found: {config_path}") from exc
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in configuration file: {config_path}") from exc

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Configuration file is invalid: {config_path}\n{exc}") from exc

    def dump(self, path: Path | str | None = None) -> None:
        """Persist the configuration back to disk as JSON."""

        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(self.model_dump_json(indent=2), encoding="utf-8")

    def apply_env(self, environ: Mapping[str, str] | None = None) -> "NewsyConfig":
        """Return a copy with values overridden from environment variables."""

        env = os.environ if environ is None else environ
        data: Dict[str, Dict[str, Any]] = self.model_dump()
        for variable, (section, field) in _ENV_OVERRIDES.items():
            value = env.get(variable)
            if value is None or not value.strip():
                continue
            data[section][field] = value.strip()

        try:
            return type(self).model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid configuration value in environment\n{exc}") from exc


def load_config(path: Path | str | None = None) -> NewsyConfig:
    """Load configuration from disk and apply environment overrides."""

    return NewsyConfig.from_file(path).apply_env()


def read_env_file(path: Path | str) -> Dict[str, str]:
    """Parse ``KEY=value`` lines from a dotenv file.

    Blank lines and ``#`` comments are ignored, an ``export`` prefix is
    accepted, and a value wrapped in matching quotes is unwrapped.  Unquoted
    values lose a trailing `` # comment``.
    """

    values: Dict[str, str] = {}
    for raw_line in Path(path).read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = (part.strip() for part in line.split("=", 1))
        if not key:
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        elif " #" in value:
            value = value.split(" #", 1)[0].rstrip()
        values[key] = value
    return values


def load_env_file(
    path: Path | str | None = None, environ: MutableMapping[str, str] | None = None
) -> int:
    """Copy variables from the project ``.env`` into ``environ`` without overriding.

    Returns the number of variables set; a missing file sets none.
    """

    env_path = Path(path) if path else DEFAULT_ENV_PATH
    if not env_path.exists():
        return 0

    target = os.environ if environ is None else environ
    applied = 0
    for key, value in read_env_file(env_path).items():
        if key not in target:
            target[key] = value
            applied += 1
    return applied
