# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Authorization policy evaluator.

Role-based and stateless: it only ever looks at the roles carried by an
already-verified access token and never reads the identity store.
"""

from dataclasses import dataclass, field
from typing import Iterable


@dataclass(frozen=True)
class Principal:
    """The verified caller, rebuilt from access-token claims on every request."""

    id: str
    email: str
    roles: frozenset = field(default_factory=frozenset)


def allow(caller_roles: Iterable[str], required_roles: Iterable[str]) -> bool:
    """
    True when the caller holds at least one of *required_roles*.

    Matching is case-insensitive.  An empty requirement admits any
    authenticated caller.
    """
    required = {r.lower() for r in required_roles}
    if not required:
        return True
    return any(r.lower() in required for r in caller_roles)
