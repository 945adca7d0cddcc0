"""Supabase Auth as the identity provider for the cart."""
from typing import Any, Callable, Optional

import httpx
from supabase._async.client import AsyncClient

from storefront.logging import get_logger, sanitize_id_for_logging

from .session import SessionEvent, SignedIn, SignedOut

logger = get_logger(__name__)


def translate_auth_event(event: str, session: Any) -> Optional[SessionEvent]:
    """Map a Supabase auth event to a cart session event.

    Any event that arrives without a session means nobody is signed in.
    Token refreshes and profile updates do not change who owns the cart,
    so they map to None.
    """
    user = getattr(session, "user", None)
    if event == "SIGNED_OUT" or user is None:
        return SignedOut()
    if event == "SIGNED_IN":
        return SignedIn(user_id=str(user.id))
    return None


class SupabaseIdentityProvider:
    """Identity provider backed by the async Supabase client's auth API."""

    def __init__(self, client: AsyncClient):
        self.client = client

    async def get_current_user_id(self) -> Optional[str]:
        """Current user id, or None for a guest (including when auth is unreachable)."""
        try:
            session = await self.client.auth.get_session()
        except httpx.HTTPError as e:
            logger.warning(f"Could not read auth session, continuing as guest: {e}")
            return None
        if session is None or session.user is None:
            return None
        logger.debug(f"Current session user {sanitize_id_for_logging(session.user.id)}")
        return str(session.user.id)

    def subscribe(self, callback: Callable[[SessionEvent], Any]) -> Callable[[], None]:
        def _on_auth_state_change(event, session):
            translated = translate_auth_event(event, session)
            if translated is not None:
                callback(translated)

        subscription = self.client.auth.on_auth_state_change(_on_auth_state_change)
        return subscription.unsubscribe
