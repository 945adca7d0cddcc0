"""Session identity and the Supabase identity provider adapter."""
from .session import (
    Authenticated,
    Guest,
    IdentityProvider,
    SessionEvent,
    SessionIdentity,
    SignedIn,
    SignedOut,
)
from .supabase import SupabaseIdentityProvider, translate_auth_event

__all__ = [
    "Authenticated",
    "Guest",
    "IdentityProvider",
    "SessionEvent",
    "SessionIdentity",
    "SignedIn",
    "SignedOut",
    "SupabaseIdentityProvider",
    "translate_auth_event",
]
