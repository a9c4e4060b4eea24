"""Configuration management for the portal sync pipeline."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal, Sequence

from dotenv import load_dotenv
from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()

TASK_PREFIX = "Zadacha_"


def _split_list(value: str | Sequence[str] | None, coerce_lower: bool = True) -> list[str]:
    """Turn delimiter-separated env strings into cleaned lists."""
    if value is None:
        return []
    if isinstance(value, str):
        items = re.split(r"[;,\s]", value)
    else:
        items = list(value)
    cleaned: list[str] = []
    for item in items:
        trimmed = item.strip()
        if not trimmed:
            continue
        cleaned.append(trimmed.lower() if coerce_lower else trimmed)
    return cleaned


def task_name(value: str) -> str:
    """Normalise `54` and `Zadacha_54` to the portal task name."""
    value = value.strip()
    return value if value.startswith(TASK_PREFIX) else f"{TASK_PREFIX}{value}"


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    portal_base_url: HttpUrl = Field(..., alias="PORTAL_BASE_URL")
    portal_username: str = Field(..., alias="PORTAL_USERNAME")
    portal_password: str = Field(..., alias="PORTAL_PASSWORD")
    portal_timeout: float = Field(180.0, alias="PORTAL_TIMEOUT")
    portal_retry_deadline: float = Field(600.0, alias="PORTAL_RETRY_DEADLINE")
    portal_retry_delay: float = Field(2.0, alias="PORTAL_RETRY_DELAY")
    portal_cooldown: float = Field(1.0, alias="PORTAL_COOLDOWN")
    portal_chunk_size: int = Field(1048576, alias="PORTAL_CHUNK_SIZE")

    zip_path: Path = Field(Path("Download/Portal5"), alias="ZIP_PATH")
    doc_path: Path = Field(Path("Download"), alias="DOC_PATH")
    exclude_tasks_raw: str = Field("", alias="EXCLUDE_TASKS")
    delete_after_load: bool = Field(False, alias="DELETE_AFTER_LOAD")

    poll_interval: float = Field(30.0, alias="POLL_INTERVAL")
    poll_minutes: int = Field(60, alias="POLL_MINUTES")

    crypto_util: str = Field("cryptcp", alias="CRYPTO_UTIL")
    crypto_thumbprint: str | None = Field(None, alias="CRYPTO_THUMBPRINT")
    crypto_pin: str | None = Field(None, alias="CRYPTO_PIN")
    crypto_decrypt_command: str = Field(
        '-decr "{src}" "{dst}" -thumbprint {cert} -nochain', alias="CRYPTO_DECRYPT_COMMAND"
    )
    crypto_encrypt_command: str = Field(
        '-encr "{src}" "{dst}" -thumbprint {cert} -nochain -der', alias="CRYPTO_ENCRYPT_COMMAND"
    )
    crypto_sign_detached_command: str = Field(
        '-sign "{src}" "{dst}" -thumbprint {cert} -nochain -der -detached -addchain',
        alias="CRYPTO_SIGN_DETACHED_COMMAND",
    )
    crypto_verify_detached_command: str = Field(
        '-verify "{src}" "{dst}" -nochain -detached', alias="CRYPTO_VERIFY_DETACHED_COMMAND"
    )
    crypto_clean_sign_command: str = Field(
        '-verify "{src}" "{dst}" -nochain -attached', alias="CRYPTO_CLEAN_SIGN_COMMAND"
    )

    notify_mode: Literal["batch", "immediate"] = Field("batch", alias="NOTIFY_MODE")
    notify_subscribers_raw: str = Field("", alias="NOTIFY_SUBSCRIBERS")
    smtp_host: str | None = Field(None, alias="SMTP_HOST")
    smtp_port: int = Field(25, alias="SMTP_PORT")
    smtp_username: str | None = Field(None, alias="SMTP_USERNAME")
    smtp_password: str | None = Field(None, alias="SMTP_PASSWORD")
    smtp_from: str = Field("portal-sync@localhost", alias="SMTP_FROM")
    smtp_use_tls: bool = Field(False, alias="SMTP_USE_TLS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_timings(self):
        if self.portal_retry_delay < 0 or self.portal_cooldown < 0:
            raise ValueError("PORTAL_RETRY_DELAY and PORTAL_COOLDOWN must not be negative.")
        if self.poll_interval <= 0:
            raise ValueError("POLL_INTERVAL must be positive.")
        if self.portal_chunk_size < 0:
            raise ValueError("PORTAL_CHUNK_SIZE must be zero (unlimited) or positive.")
        return self

    @field_validator(
        "crypto_thumbprint",
        "crypto_pin",
        "smtp_host",
        "smtp_username",
        "smtp_password",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @property
    def api_url(self) -> str:
        """REST root of the portal, always ending with a slash."""
        return str(self.portal_base_url).rstrip("/") + "/back/rapi2/"

    @property
    def exclude_tasks(self) -> list[str]:
        return [task_name(item) for item in _split_list(self.exclude_tasks_raw, coerce_lower=False)]

    @property
    def notify_subscribers(self) -> list[str]:
        return _split_list(self.notify_subscribers_raw, coerce_lower=True)

    @property
    def chunk_size(self) -> int | None:
        """Range-request chunk size; None downloads in one request."""
        return self.portal_chunk_size or None
