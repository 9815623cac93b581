from collections.abc import Awaitable, Callable
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import Settings, get_settings
from app.security import Identity, Role

bearer_scheme = HTTPBearer(auto_error=False)


def decode_identity(claims: dict[str, Any]) -> Identity:
    """Build an identity from ``{"id": int, "role": Role}`` token claims."""

    try:
        return Identity(id=int(claims["id"]), role=Role(claims["role"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid token") from exc


def resolve_identity_from_token(token: str | None, settings: Settings) -> Identity:
    """Verify the bearer token and return the identity it carries."""

    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized: No token provided")

    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid token") from exc

    return decode_identity(claims)


async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> Identity:
    """Resolve the caller once per request and cache it on ``request.state``."""

    cached = getattr(request.state, "identity", None)
    if isinstance(cached, Identity):
        return cached

    token = credentials.credentials if credentials is not None else None
    identity = resolve_identity_from_token(token, get_settings())
    request.state.identity = identity
    return identity


def role_required(*roles: Role) -> Callable[[Identity], Awaitable[Identity]]:
    """Dependency factory ensuring the current identity holds one of ``roles``."""

    allowed = frozenset(roles)

    async def dependency(identity: Annotated[Identity, Depends(get_current_identity)]) -> Identity:
        if not identity.has_role(*allowed):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return identity

    return dependency


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
