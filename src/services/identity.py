"""HTTP client for the identity provider (Supabase Auth REST API) with retry
logic and timeout handling.

Only one call matters to the agent backend: turning a bearer token into a
user identity via ``GET /auth/v1/user``.  A rejected token is not an error,
it simply means "anonymous".
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

import httpx

from src.config import SUPABASE_ANON_KEY, SUPABASE_URL
from src.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 0.5
REQUEST_TIMEOUT_SECONDS = 10.0


class IdentityProviderError(Exception):
    """Raised when the identity provider cannot be reached after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class UserIdentity:
    """The parts of an identity-provider user the backend cares about."""

    external_id: str
    email: str | None = None
    full_name: str | None = None


class IdentityClient:
    """Thin wrapper around the Supabase Auth ``/user`` endpoint with automatic
    retries for transport errors and 5xx responses.

    Results are never cached: every chat turn re-validates its token.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
    ):
        self._base_url = (base_url or SUPABASE_URL or "").rstrip("/")
        self._api_key = api_key or SUPABASE_ANON_KEY
        self._client = httpx.Client(
            base_url=self._base_url or "http://identity.invalid",
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url and self._api_key)

    # ── Internal helpers ─────────────────────────────────────────────

    def _request_user(self, token: str) -> httpx.Response:
        """GET /auth/v1/user with exponential-backoff retries."""
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            t0 = time.perf_counter()
            try:
                response = self._client.request(
                    "GET",
                    "/auth/v1/user",
                    headers={
                        "apikey": self._api_key or "",
                        "Authorization": f"Bearer {token}",
                    },
                )
                elapsed = (time.perf_counter() - t0) * 1000
                if response.status_code >= 500:
                    metrics.record_failure(
                        "identity", "GET /auth/v1/user",
                        error_type="5xx", latency_ms=elapsed,
                    )
                    raise IdentityProviderError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                metrics.record_success("identity", "GET /auth/v1/user", latency_ms=elapsed)
                return response

            except httpx.TransportError as exc:
                last_error = exc
                metrics.record_failure(
                    "identity", "GET /auth/v1/user", error_type=type(exc).__name__,
                )
                logger.warning(
                    "Identity provider attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except IdentityProviderError as exc:
                last_error = exc
                logger.warning(
                    "Identity provider server error on attempt %d/%d. Retrying…",
                    attempt,
                    MAX_RETRIES,
                )

            if attempt < MAX_RETRIES:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise IdentityProviderError(
            f"Identity provider request failed after {MAX_RETRIES} retries: {last_error}"
        )

    @staticmethod
    def _parse_user(data: dict[str, Any]) -> UserIdentity | None:
        user_id = data.get("id")
        if not user_id:
            return None
        meta = data.get("user_metadata")
        if not isinstance(meta, dict):
            meta = {}
        return UserIdentity(
            external_id=str(user_id),
            email=data.get("email"),
            full_name=meta.get("full_name") or meta.get("name"),
        )

    # ── Public API ───────────────────────────────────────────────────

    def get_user(self, token: str) -> UserIdentity | None:
        """Resolve *token* to a user, or ``None`` if it is missing or rejected.

        Raises:
            IdentityProviderError: the provider was unreachable, kept failing
                with 5xx responses, or answered with an unreadable body.
        """
        if not token or not self.is_configured:
            return None

        response = self._request_user(token)
        if response.status_code >= 400:
            logger.info("Identity provider rejected token (HTTP %d)", response.status_code)
            return None
        try:
            data = response.json()
        except ValueError as exc:
            raise IdentityProviderError(
                f"Identity provider returned a non-JSON body (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise IdentityProviderError(
                f"Identity provider returned {type(data).__name__}, expected an object",
                status_code=response.status_code,
            )
        return self._parse_user(data)

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        self._client.close()


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: IdentityClient | None = None
_client_lock = threading.Lock()


def get_identity_client() -> IdentityClient:
    """Return a module-level IdentityClient singleton (double-checked locking).

    A closed client is replaced, so a restarted app gets a working one.
    """
    global _client
    if _client is None or _client.is_closed:
        with _client_lock:
            if _client is None or _client.is_closed:
                _client = IdentityClient()
                if not _client.is_configured:
                    logger.warning(
                        "SUPABASE_URL / SUPABASE_ANON_KEY not set — all chat requests "
                        "will be treated as anonymous",
                    )
    return _client
