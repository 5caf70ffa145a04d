"""
Environment-derived configuration.

Values are read from the process environment, optionally seeded from a .env
file. Mail credentials are resolved on every request (see
``resolve_mail_config``) so that rotating them does not need a restart.

Environment variables
---------------------
SMTP_USER / MAIL_USER              Sender (and recipient) address.
SMTP_PASS / APP_PASS / MAIL_PASS   SMTP secret. Unset → disposable test account.
SMTP_SERVICE / MAIL_SERVICE        Well-known service name (default: "gmail").
SMTP_TIMEOUT                       SMTP timeout in seconds (default: 60).
MAIL_SUBJECT                       Subject line of the notification.
MAIL_FROM_NAME                     Display name used in the From header.
CORS_ORIGINS                       Comma-separated allowed origins (default: "*").
STATIC_DIR                         Directory holding index.html and assets.
MAX_BODY_BYTES                     Request body limit (default: 25 MB).
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from visitor.models.mail import MailConfig

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MAIL_USER = "vedantdagadkhair@gmail.com"
DEFAULT_MAIL_SERVICE = "gmail"
DEFAULT_SUBJECT = "\U0001F389 New Year 2026 Visitor"
DEFAULT_FROM_NAME = "New Year App"
DEFAULT_SMTP_TIMEOUT = 60.0
DEFAULT_MAX_BODY_BYTES = 25 * 1024 * 1024

_DEFAULT_STATIC_DIR = Path(__file__).resolve().parent.parent / "public"


def _first_set(env: Mapping[str, str], *names: str) -> Optional[str]:
    """Return the first non-empty value among ``names``, or None."""
    for name in names:
        value = env.get(name)
        if value:
            return value
    return None


def _parse_timeout(raw: Optional[str]) -> float:
    """Seconds from SMTP_TIMEOUT; unset, unparseable or non-positive values use the default."""
    if not raw:
        return DEFAULT_SMTP_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid SMTP_TIMEOUT {raw!r}; using {DEFAULT_SMTP_TIMEOUT}s")
        return DEFAULT_SMTP_TIMEOUT
    if timeout <= 0:
        logger.warning(f"Ignoring non-positive SMTP_TIMEOUT {raw!r}; using {DEFAULT_SMTP_TIMEOUT}s")
        return DEFAULT_SMTP_TIMEOUT
    return timeout


def resolve_mail_config(env: Optional[Mapping[str, str]] = None) -> MailConfig:
    """
    Resolve mail credentials with legacy-compatible fallbacks.

    Priority:
      user:     SMTP_USER → MAIL_USER → DEFAULT_MAIL_USER
      password: SMTP_PASS → APP_PASS → MAIL_PASS → None
      service:  SMTP_SERVICE → MAIL_SERVICE → "gmail"
    """
    if env is None:
        env = os.environ

    return MailConfig(
        user=_first_set(env, "SMTP_USER", "MAIL_USER") or DEFAULT_MAIL_USER,
        password=_first_set(env, "SMTP_PASS", "APP_PASS", "MAIL_PASS"),
        service=_first_set(env, "SMTP_SERVICE", "MAIL_SERVICE") or DEFAULT_MAIL_SERVICE,
        timeout=_parse_timeout(env.get("SMTP_TIMEOUT")),
    )


def get_mail_subject() -> str:
    return os.getenv("MAIL_SUBJECT") or DEFAULT_SUBJECT


def get_from_name() -> str:
    return os.getenv("MAIL_FROM_NAME") or DEFAULT_FROM_NAME


def get_static_dir() -> Path:
    static_dir = os.getenv("STATIC_DIR", "").strip()
    return Path(static_dir) if static_dir else _DEFAULT_STATIC_DIR


def get_max_body_bytes() -> int:
    return int(os.getenv("MAX_BODY_BYTES") or DEFAULT_MAX_BODY_BYTES)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Reads CORS_ORIGINS as a comma-separated list, e.g.:
        CORS_ORIGINS=https://visitor.example.com,http://localhost:3000

    When unset every origin is allowed. Duplicates are removed while
    preserving order.
    """
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if not cors_env:
        return ["*"]

    seen: set = set()
    origins: List[str] = []
    for origin in cors_env.split(","):
        origin = origin.strip()
        if origin and origin not in seen:
            seen.add(origin)
            origins.append(origin)
    return origins
