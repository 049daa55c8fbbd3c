import pytest
from datetime import datetime
from decimal import Decimal

from app.core.clock import FixedClock
from app.core.exceptions import AuthorizationError, StaleStateError, TransitionNotPermittedError
from app.models.deletion_request import DeletionRequest, DeletionRequestStatus
from app.models.user import User, UserRole
from app.services.deletion_state_machine import DeletionRequestEvent, DeletionRequestStateMachine

NOW = datetime(2026, 5, 4, 12, 30)


@pytest.fixture
def machine():
    return DeletionRequestStateMachine(FixedClock(NOW))


@pytest.fixture
def requester():
    return User(id=1, email="owner@example.com", role=UserRole.USER)


@pytest.fixture
def admin():
    return User(id=2, email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def request_obj(requester):
    return DeletionRequest(
        id=7,
        asset_id=3,
        asset_name="Projector",
        asset_cost=Decimal("100.00"),
        requested_by=requester.id,
        requester_email=requester.email,
        justification="broken beyond repair",
        status=DeletionRequestStatus.PENDING,
    )


def test_approve_stamps_reviewer_fields(machine, request_obj, admin):
    machine.transition(request_obj, DeletionRequestEvent.APPROVE, admin, review_comment="ok")

    assert request_obj.status == DeletionRequestStatus.APPROVED
    assert request_obj.reviewed_by == admin.id
    assert request_obj.reviewer_email == admin.email
    assert request_obj.review_comment == "ok"
    assert request_obj.reviewed_at == NOW
    assert request_obj.updated_at == NOW


@pytest.mark.parametrize("comment", [None, "", "Obsolete hardware"])
def test_reject_stores_comment_exactly(machine, request_obj, admin, comment):
    machine.transition(request_obj, DeletionRequestEvent.REJECT, admin, review_comment=comment)

    assert request_obj.status == DeletionRequestStatus.REJECTED
    assert request_obj.review_comment == comment


def test_explicit_reviewer_email_wins(machine, request_obj, admin):
    machine.transition(
        request_obj,
        DeletionRequestEvent.APPROVE,
        admin,
        reviewer_email="it-desk@example.com",
    )
    assert request_obj.reviewer_email == "it-desk@example.com"


def test_requester_can_cancel_without_review_fields(machine, request_obj, requester):
    machine.transition(request_obj, DeletionRequestEvent.CANCEL, requester)

    assert request_obj.status == DeletionRequestStatus.CANCELLED
    assert request_obj.reviewed_by is None
    assert request_obj.reviewed_at is None


def test_non_admin_cannot_review(machine, request_obj, requester):
    with pytest.raises(TransitionNotPermittedError) as exc_info:
        machine.transition(request_obj, DeletionRequestEvent.APPROVE, requester)

    assert isinstance(exc_info.value, AuthorizationError)
    assert request_obj.status == DeletionRequestStatus.PENDING


def test_only_requester_can_cancel(machine, request_obj, admin):
    with pytest.raises(TransitionNotPermittedError):
        machine.transition(request_obj, DeletionRequestEvent.CANCEL, admin)


@pytest.mark.parametrize("terminal", [
    DeletionRequestStatus.APPROVED,
    DeletionRequestStatus.REJECTED,
    DeletionRequestStatus.CANCELLED,
])
@pytest.mark.parametrize("event", list(DeletionRequestEvent))
def test_terminal_requests_never_transition(machine, request_obj, admin, requester, terminal, event):
    request_obj.status = terminal
    actor = requester if event == DeletionRequestEvent.CANCEL else admin

    with pytest.raises(StaleStateError) as exc_info:
        machine.transition(request_obj, event, actor, review_comment="late")

    assert exc_info.value.current_status == terminal.value
    assert exc_info.value.to_dict()["code"] == "STALE_STATE"
    assert request_obj.status == terminal
    assert request_obj.review_comment is None
    assert request_obj.reviewed_at is None
