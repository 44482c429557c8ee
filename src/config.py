"""Centralized configuration for the Agentic Services agent backend.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/agentic-services/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 - lazy import to avoid boto3 dep in tests

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/agentic-services/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = _optional_env(name)
    if value:
        return value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /agentic-services/{name} (AWS)."
    )


def _optional_env(name: str, *fallbacks: str) -> str | None:
    """Return a secret from env-var (or a legacy alias) or SSM, else ``None``."""
    for candidate in (name, *fallbacks):
        value = os.getenv(candidate)
        if value and not value.startswith("your_"):
            return value

    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")

# Each specialist may run on its own model; they default to MODEL_NAME
SALES_MODEL_NAME: str = os.getenv("SALES_MODEL_NAME", MODEL_NAME)
SUPPORT_MODEL_NAME: str = os.getenv("SUPPORT_MODEL_NAME", MODEL_NAME)
NAVIGATOR_MODEL_NAME: str = os.getenv("NAVIGATOR_MODEL_NAME", MODEL_NAME)
ASSISTANT_MODEL_NAME: str = os.getenv("ASSISTANT_MODEL_NAME", MODEL_NAME)

# The intent orchestrator only picks a specialist, so a cheap model is enough
ROUTER_MODEL_NAME: str = os.getenv("ROUTER_MODEL_NAME", "claude-haiku-4-5")

LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
LLM_MAX_RETRIES: int = int(os.getenv("LLM_MAX_RETRIES", "2"))

# Upper bound on graph steps per turn (each model call and each tool round is a step)
MAX_AGENT_STEPS: int = int(os.getenv("MAX_AGENT_STEPS", "25"))
TURN_TIMEOUT_SECONDS: float = float(os.getenv("TURN_TIMEOUT_SECONDS", "120"))

# ── Database ────────────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./agentic_services.db")
DB_ECHO: bool = _flag("DB_ECHO", "false")
DB_POOL_TIMEOUT_SECONDS: int = int(os.getenv("DB_POOL_TIMEOUT_SECONDS", "30"))
SEED_DEMO_DATA: bool = _flag("SEED_DEMO_DATA", "true")

# ── Identity provider (Supabase Auth) ───────────────────────────────
# Both optional: without them every request is treated as anonymous.
SUPABASE_URL: str | None = _optional_env("SUPABASE_URL")
SUPABASE_ANON_KEY: str | None = _optional_env("SUPABASE_ANON_KEY")

# ── Outbound email (SMTP relay, Gmail by default) ───────────────────
SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER: str | None = _optional_env("SMTP_USER", "GMAIL_USER")
SMTP_PASSWORD: str | None = _optional_env("SMTP_PASSWORD", "GMAIL_APP_PASSWORD")
SMTP_TIMEOUT_SECONDS: float = float(os.getenv("SMTP_TIMEOUT_SECONDS", "20"))

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
