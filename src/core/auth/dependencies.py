from typing import Annotated

from fastapi import Depends, Header

from src.core.auth.jwt import decode_token
from src.core.auth.models import Principal, UserRole
from src.core.exceptions import AuthenticationError, AuthorizationError


async def get_current_principal(
    authorization: Annotated[str | None, Header()] = None,
) -> Principal:
    """
    Dependency to get the authenticated principal from the JWT token.

    Usage:
        @router.get("/collections")
        async def my_collections(principal: Principal = Depends(get_current_principal)):
            ...
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid authorization header format")

    token = authorization.replace("Bearer ", "")

    payload = decode_token(token, token_type="access")
    try:
        principal_id = int(payload["sub"])
        role = UserRole(payload["role"])
    except (KeyError, ValueError):
        raise AuthenticationError("Token is missing a valid subject or role")

    return Principal(id=principal_id, role=role)


def require_roles(*roles: UserRole):
    """
    Dependency factory to require specific roles.

    Usage:
        @router.post("/listings")
        async def create_listing(
            principal: Principal = Depends(require_roles(UserRole.VENDOR))
        ):
            ...
    """

    async def role_checker(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if not principal.has_role(*roles):
            allowed = ", ".join(r.value for r in roles)
            raise AuthorizationError(f"Required role: {allowed}")
        return principal

    return role_checker


# Convenience dependencies
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
ConsumerPrincipal = Annotated[Principal, Depends(require_roles(UserRole.CONSUMER))]
VendorPrincipal = Annotated[Principal, Depends(require_roles(UserRole.VENDOR))]
OrganisationPrincipal = Annotated[
    Principal, Depends(require_roles(UserRole.CHARITABLE_ORGANISATION))
]
AdminPrincipal = Annotated[Principal, Depends(require_roles(UserRole.ADMIN))]
