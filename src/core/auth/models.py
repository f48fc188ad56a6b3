from dataclasses import dataclass
from enum import StrEnum


class UserRole(StrEnum):
    """Roles issued by the identity provider."""

    CONSUMER = "consumer"
    VENDOR = "vendor"
    CHARITABLE_ORGANISATION = "charitable_organisation"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """
    Authenticated caller.

    Note: users live in the identity provider, not in this database. The ledger
    trusts the id and role carried by a verified access token.
    """

    id: int
    role: UserRole

    def has_role(self, *roles: UserRole) -> bool:
        """Check if principal has any of the specified roles."""
        return self.role in roles

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
