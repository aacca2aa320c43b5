"""Resolved caller identity and authority."""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from uuid import UUID

from wallet_ledger_service.core.exceptions import Forbidden
from wallet_ledger_service.models import User


class Capability(str, enum.Enum):
    """Capability tags an API key can be granted."""

    READ = "read"
    DEPOSIT = "deposit"
    TRANSFER = "transfer"


ALL_CAPABILITIES = frozenset(Capability)


@dataclass(frozen=True)
class Principal(ABC):
    """Authenticated user plus what they may do. Concrete kinds define the capabilities."""

    user: User

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @property
    @abstractmethod
    def capabilities(self) -> frozenset[Capability]:
        """Capabilities this principal holds."""

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, *capabilities: Capability) -> None:
        """Raise Forbidden naming every capability this principal lacks."""
        missing = [c.value for c in capabilities if not self.has_capability(c)]
        if missing:
            raise Forbidden(
                f"API key does not have required permissions: {', '.join(missing)}",
                details={"missing_permissions": missing},
            )


@dataclass(frozen=True)
class SessionPrincipal(Principal):
    """Caller authenticated with a session token; holds every capability."""

    @property
    def capabilities(self) -> frozenset[Capability]:
        return ALL_CAPABILITIES


@dataclass(frozen=True)
class ApiKeyPrincipal(Principal):
    """Caller authenticated with an API key; holds exactly the key's capabilities."""

    api_key_id: UUID = field(default=None)  # type: ignore[assignment]
    granted: frozenset[Capability] = field(default_factory=frozenset)

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self.granted
