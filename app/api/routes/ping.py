from fastapi import APIRouter

from app.dependencies.auth import CurrentIdentity

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public liveness probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/whoami", summary="Echo the identity carried by the bearer token")
async def whoami(identity: CurrentIdentity) -> dict[str, str | int]:
    return {"status": "ok", "id": identity.id, "role": identity.role.value}
