"""Per-turn caller context: who is talking, and in which conversation.

``ContextResolver`` turns an optional bearer token into an ``AgentContext``
and attaches (or opens) a persisted conversation session.  Nothing here
ever fails a turn: identity or database trouble degrades to an anonymous
context, or to a context without a session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from src.db.store import Store, StoreError
from src.services.identity import IdentityClient, IdentityProviderError

if TYPE_CHECKING:
    from src.specialists import SpecialistAgent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentContext:
    """The caller of one turn.  Never persisted."""

    user_id: str | None = None
    session_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = AgentContext()


def parse_bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class ContextResolver:
    def __init__(self, identity: IdentityClient, store: Store):
        self._identity = identity
        self._store = store

    def resolve(self, token: str | None) -> AgentContext:
        """Map *token* to a local user, or return the anonymous context."""
        if not token:
            return ANONYMOUS

        try:
            identity = self._identity.get_user(token)
        except IdentityProviderError as exc:
            logger.warning("Identity provider unavailable, continuing anonymously: %s", exc)
            return ANONYMOUS
        if identity is None:
            return ANONYMOUS

        try:
            user = self._store.upsert_user(
                identity.external_id, email=identity.email, full_name=identity.full_name,
            )
        except StoreError:
            logger.warning(
                "Could not persist user %s, continuing anonymously", identity.external_id,
            )
            return ANONYMOUS
        return AgentContext(user_id=user.id)

    def attach_session(
        self,
        context: AgentContext,
        session_id: str | None,
        specialist: SpecialistAgent,
    ) -> AgentContext:
        """Reuse *session_id* if it belongs to the caller, else open a new one.

        Anonymous callers never get a session.
        """
        if not context.is_authenticated:
            return context

        try:
            if session_id:
                existing = self._store.get_session(session_id)
                if existing is not None and existing.user_id == context.user_id:
                    return replace(context, session_id=existing.id)
                logger.info(
                    "Session %s unknown or not owned by user %s, opening a new one",
                    session_id, context.user_id,
                )

            created = self._store.create_session(
                context.user_id, specialist.store_type, specialist.role_name,
            )
        except StoreError:
            logger.warning("Could not attach a session for user %s", context.user_id)
            return context
        return replace(context, session_id=created.id)

    def close(self) -> None:
        self._identity.close()
