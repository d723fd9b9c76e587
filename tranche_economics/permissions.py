"""Explicit caller capabilities checked at the top of every mutating operation."""

from dataclasses import dataclass, field
from enum import Enum

from tranche_economics.errors import UnauthorizedError


class Role(str, Enum):
    """Roles a caller may hold."""

    ADMIN = "admin"
    KEEPER = "keeper"
    # Allowed to move principal and yield inside the tranche vaults.
    CONTROLLER = "controller"


@dataclass(frozen=True)
class Caller:
    """Identity plus the roles it was granted."""

    name: str
    roles: frozenset[Role] = field(default_factory=frozenset)

    def has(self, role: Role) -> bool:
        """Return True if the caller holds ``role`` (admins hold every role)."""
        return role in self.roles or Role.ADMIN in self.roles


def user(name: str) -> Caller:
    """Build an unprivileged caller (a depositor)."""
    return Caller(name=name)


def system_caller(name: str, *roles: Role) -> Caller:
    """Build a caller holding the given roles."""
    return Caller(name=name, roles=frozenset(roles))


def require_role(caller: Caller, role: Role, action: str) -> None:
    """Raise UnauthorizedError unless ``caller`` holds ``role``."""
    if not caller.has(role):
        raise UnauthorizedError(f"{caller.name} lacks role '{role.value}' required for {action}")
