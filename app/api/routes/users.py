from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from app.dependencies.tickets import TicketServiceDep, UserManagerIdentity
from app.security import Role
from app.tickets.errors import InvalidTicketInputError
from app.tickets.models import UserAccount

router = APIRouter(prefix="/users", tags=["users"])


class UserCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    role: Role


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: Role
    created_at: datetime


def _to_response(user: UserAccount) -> UserResponse:
    return UserResponse.model_validate(user)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreateRequest,
    service: TicketServiceDep,
    identity: UserManagerIdentity,
) -> UserResponse:
    try:
        user = await service.create_user(name=payload.name, email=payload.email, role=payload.role)
    except InvalidTicketInputError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _to_response(user)


@router.get("", response_model=list[UserResponse])
async def list_users(service: TicketServiceDep, identity: UserManagerIdentity) -> list[UserResponse]:
    users = await service.list_users()
    return [_to_response(user) for user in users]
