"""Session identity types.

A cart session is either a guest (no identity, cart lives in local storage)
or authenticated (cart lives in the remote `cart` table under user_id).
"""
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Union


@dataclass(frozen=True)
class Guest:
    """No external identity."""

    @property
    def is_authenticated(self) -> bool:
        return False


@dataclass(frozen=True)
class Authenticated:
    """Signed-in shopper."""
    user_id: str

    @property
    def is_authenticated(self) -> bool:
        return True


SessionIdentity = Union[Guest, Authenticated]


@dataclass(frozen=True)
class SignedIn:
    user_id: str


@dataclass(frozen=True)
class SignedOut:
    pass


SessionEvent = Union[SignedIn, SignedOut]


def identity_from_user_id(user_id: Optional[str]) -> SessionIdentity:
    return Authenticated(user_id) if user_id else Guest()


class IdentityProvider(Protocol):
    async def get_current_user_id(self) -> Optional[str]: ...

    def subscribe(self, callback: Callable[[SessionEvent], Any]) -> Callable[[], None]:
        """Register for session changes. Returns an unsubscribe function."""
        ...
