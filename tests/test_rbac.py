from datetime import datetime, timezone

import pytest
from fastapi import HTTPException
from jose import jwt

from app.core.config import Settings
from app.dependencies.auth import resolve_identity_from_token, role_required
from app.security import Identity, Role
from app.tickets.errors import TicketPermissionError
from app.tickets.models import Ticket, TicketPriority
from app.tickets.policy import OPERATION_ROLES, TicketOperation, authorize_status_change, can_view
from app.tickets.state import TicketStatus

SETTINGS = Settings(jwt_secret="test-secret")


def _ticket(*, assigned_to: int | None = 7, created_by: int = 3) -> Ticket:
    return Ticket(
        id=1,
        title="VPN drops",
        description="VPN disconnects every ten minutes",
        priority=TicketPriority.MEDIUM,
        status=TicketStatus.IN_PROGRESS,
        created_by=created_by,
        assigned_to=assigned_to,
        created_at=datetime.now(timezone.utc),
    )


@pytest.mark.asyncio
async def test_role_required_allows_authorized_identity():
    dependency = role_required(Role.MANAGER, Role.SUPPORT)
    identity = Identity(id=1, role=Role.SUPPORT)
    result = await dependency(identity)  # type: ignore[arg-type]
    assert result.id == 1


@pytest.mark.asyncio
async def test_role_required_rejects_unauthorized_identity():
    dependency = role_required(Role.MANAGER)
    identity = Identity(id=2, role=Role.USER)
    with pytest.raises(HTTPException) as exc:
        await dependency(identity)  # type: ignore[arg-type]

    assert exc.value.status_code == 403
    assert exc.value.detail == "Insufficient permissions"


def test_resolve_identity_reads_id_and_role_claims():
    token = jwt.encode({"id": 42, "role": "SUPPORT"}, "test-secret", algorithm="HS256")
    identity = resolve_identity_from_token(token, SETTINGS)
    assert identity == Identity(id=42, role=Role.SUPPORT)


@pytest.mark.parametrize(
    "token",
    [
        None,
        "",
        "not-a-jwt",
        jwt.encode({"id": 42, "role": "SUPPORT"}, "other-secret", algorithm="HS256"),
        jwt.encode({"id": 42}, "test-secret", algorithm="HS256"),
        jwt.encode({"id": 42, "role": "ADMIN"}, "test-secret", algorithm="HS256"),
        jwt.encode({"id": "abc", "role": "USER"}, "test-secret", algorithm="HS256"),
    ],
)
def test_resolve_identity_rejects_bad_tokens(token):
    with pytest.raises(HTTPException) as exc:
        resolve_identity_from_token(token, SETTINGS)
    assert exc.value.status_code == 401


def test_operation_roles_match_helpdesk_matrix():
    assert OPERATION_ROLES[TicketOperation.CREATE] == {Role.USER}
    assert OPERATION_ROLES[TicketOperation.ASSIGN] == {Role.MANAGER}
    assert OPERATION_ROLES[TicketOperation.UPDATE_STATUS] == {Role.MANAGER, Role.SUPPORT}
    assert OPERATION_ROLES[TicketOperation.VIEW] == set(Role)
    assert OPERATION_ROLES[TicketOperation.MANAGE_USERS] == {Role.MANAGER}


def test_support_assignee_may_progress_and_resolve():
    ticket = _ticket(assigned_to=7)
    for target in (TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED):
        authorize_status_change(ticket, target, requester_id=7, requester_role=Role.SUPPORT)


def test_support_cannot_close_even_when_assigned():
    with pytest.raises(TicketPermissionError):
        authorize_status_change(_ticket(assigned_to=7), TicketStatus.CLOSED, requester_id=7, requester_role=Role.SUPPORT)


def test_support_ownership_is_checked_before_target():
    with pytest.raises(TicketPermissionError) as exc:
        authorize_status_change(_ticket(assigned_to=8), TicketStatus.OPEN, requester_id=7, requester_role=Role.SUPPORT)
    assert "assigned to them" in str(exc.value)


def test_manager_may_only_close():
    ticket = _ticket()
    authorize_status_change(ticket, TicketStatus.CLOSED, requester_id=1, requester_role=Role.MANAGER)
    for target in (TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED):
        with pytest.raises(TicketPermissionError):
            authorize_status_change(ticket, target, requester_id=1, requester_role=Role.MANAGER)


def test_user_role_has_no_status_rule():
    with pytest.raises(TicketPermissionError):
        authorize_status_change(_ticket(created_by=3), TicketStatus.CLOSED, requester_id=3, requester_role=Role.USER)


def test_can_view_follows_role_scope():
    ticket = _ticket(assigned_to=7, created_by=3)
    assert can_view(ticket, Identity(id=99, role=Role.MANAGER))
    assert can_view(ticket, Identity(id=7, role=Role.SUPPORT))
    assert not can_view(ticket, Identity(id=8, role=Role.SUPPORT))
    assert can_view(ticket, Identity(id=3, role=Role.USER))
    assert not can_view(ticket, Identity(id=4, role=Role.USER))


def test_identity_has_role():
    identity = Identity(id=5, role=Role.SUPPORT)
    assert identity.has_role(Role.MANAGER, Role.SUPPORT)
    assert not identity.has_role(Role.USER)
