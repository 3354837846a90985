"""Account identity, decided once at the request boundary."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Union

DEMO_ACCOUNT_IDS = {"", "demo", "demo-user", "anonymous", "landing"}


@dataclass(frozen=True)
class Authenticated:
    account_id: str

    @property
    def is_authenticated(self) -> bool:
        return True


@dataclass(frozen=True)
class Anonymous:
    @property
    def is_authenticated(self) -> bool:
        return False


AccountIdentity = Union[Authenticated, Anonymous]

ANONYMOUS = Anonymous()


def parse_identity(raw: Any) -> AccountIdentity:
    """Map a raw account id from the wire to a tagged identity.

    Real accounts are UUIDs issued by the auth provider; anything else
    (missing, the demo placeholder, free text) is landing-page traffic.
    """
    if raw is None:
        return ANONYMOUS
    value = str(raw).strip()
    if value.lower() in DEMO_ACCOUNT_IDS:
        return ANONYMOUS
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        return ANONYMOUS
    return Authenticated(account_id=str(parsed))
