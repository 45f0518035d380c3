# tests/test_workflow_service.py

"""
Tests for the request state machine: role gates, transitions, payments, fees.
"""

import re

import pytest

from core.errors import ErrorKind
from models.enums import RequestStatus, Role
from services.workflow_service import ALLOWED_TRANSITIONS, WorkflowActionService, can_transition
from fakes import seed_request


def service(backend, role, user_id=None):
    return WorkflowActionService(backend, role, user_id or f"{role}-1")


def mutations(backend):
    return backend.calls_to("update") + backend.calls_to("rpc", "generate_receipt_data")


# ============================================================
# Role gates: denied before any backend call
# ============================================================
@pytest.mark.parametrize("role", [Role.user, Role.agent])
@pytest.mark.asyncio
async def test_admin_actions_denied_for_non_admins(backend, role):
    seed_request(backend, id="r1")
    svc = service(backend, role)

    results = [
        await svc.assign_agent("r1", "agent-2"),
        await svc.process_payment("r1", "200", "cash"),
        await svc.update_fees("r1", "100", "50", "note"),
    ]

    assert [bool(r) for r in results] == [False, False, False]
    assert all(r.error == ErrorKind.access_denied for r in results)
    assert mutations(backend) == []
    assert backend.calls == []


@pytest.mark.parametrize("role", [Role.user, Role.admin])
@pytest.mark.asyncio
async def test_agent_actions_denied_for_non_agents(backend, role):
    seed_request(backend, id="r1", status="assigned", assigned_agent_id="agent-1")
    svc = service(backend, role)

    results = [
        await svc.assign_self("r1"),
        await svc.mark_payment_received("r1"),
        await svc.complete_request("r1"),
        await svc.cancel_request("r1"),
    ]

    assert all(not r and r.error == ErrorKind.access_denied for r in results)
    assert backend.calls == []
    assert backend.row("inspection_requests", "r1")["status"] == "assigned"


@pytest.mark.asyncio
async def test_user_assign_agent_records_access_denied_notification(backend):
    seed_request(backend, id="r1")
    svc = service(backend, Role.user, "customer-1")

    result = await svc.assign_agent("r1", "agent-2")

    assert result.ok is False
    assert backend.row("inspection_requests", "r1")["assigned_agent_id"] is None
    assert len(svc.notifier.history) == 1
    assert svc.notifier.last.title == "Access Denied"
    assert svc.notifier.last.description == "Only admins can assign agents"
    assert svc.notifier.last.error == "access_denied"


@pytest.mark.asyncio
async def test_agent_without_id_cannot_assign_self(backend):
    seed_request(backend, id="r1")
    svc = WorkflowActionService(backend, Role.agent, None)

    result = await svc.assign_self("r1")

    assert result.error == ErrorKind.access_denied
    assert backend.calls == []


# ============================================================
# Assignment
# ============================================================
@pytest.mark.asyncio
async def test_agent_assigns_self_to_pending_request(backend):
    seed_request(backend, id="r1")
    svc = service(backend, Role.agent, "agent-1")

    result = await svc.assign_self("r1")

    assert result
    row = backend.row("inspection_requests", "r1")
    assert row["status"] == "assigned"
    assert row["assigned_agent_id"] == "agent-1"
    assert svc.notifier.last.description == "You have been assigned to this request"


@pytest.mark.asyncio
async def test_admin_assigns_and_unassigns(backend):
    seed_request(backend, id="r1")
    svc = service(backend, Role.admin)

    assert await svc.assign_agent("r1", "agent-2")
    row = backend.row("inspection_requests", "r1")
    assert (row["status"], row["assigned_agent_id"]) == ("assigned", "agent-2")

    assert await svc.assign_agent("r1", None)
    row = backend.row("inspection_requests", "r1")
    assert (row["status"], row["assigned_agent_id"]) == ("pending", None)
    assert svc.notifier.last.description == "Request unassigned"


@pytest.mark.asyncio
async def test_assign_missing_request_is_not_found(backend):
    result = await service(backend, Role.admin).assign_agent("missing", "agent-1")

    assert result.error == ErrorKind.not_found
    assert backend.calls_to("update") == []


@pytest.mark.asyncio
async def test_cannot_assign_completed_request(backend):
    seed_request(backend, id="r1", status="completed", assigned_agent_id="agent-1")

    result = await service(backend, Role.admin).assign_agent("r1", "agent-2")

    assert result.error == ErrorKind.invalid_transition
    assert backend.row("inspection_requests", "r1")["assigned_agent_id"] == "agent-1"


# ============================================================
# Status changes
# ============================================================
@pytest.mark.asyncio
async def test_complete_assigned_request(backend):
    seed_request(backend, id="r1", status="in_progress", assigned_agent_id="agent-1")
    svc = service(backend, Role.agent)

    result = await svc.complete_request("r1")

    assert result
    assert result.value.status == RequestStatus.completed
    assert backend.row("inspection_requests", "r1")["status"] == "completed"


@pytest.mark.asyncio
async def test_complete_backend_error_leaves_status_unchanged(backend):
    seed_request(backend, id="r1", status="assigned", assigned_agent_id="agent-1")
    backend.fail("update:inspection_requests", "deadlock detected")
    svc = service(backend, Role.agent)

    result = await svc.complete_request("r1")

    assert not result
    assert result.error == ErrorKind.update_failed
    assert result.detail == "deadlock detected"
    assert result.message == "Failed to complete request"
    assert backend.row("inspection_requests", "r1")["status"] == "assigned"
    assert svc.notifier.last.error == "update_failed"
    assert len(svc.notifier.history) == 1


@pytest.mark.asyncio
async def test_cancel_pending_request(backend):
    seed_request(backend, id="r1")

    result = await service(backend, Role.agent).cancel_request("r1")

    assert result
    assert backend.row("inspection_requests", "r1")["status"] == "cancelled"


@pytest.mark.parametrize("terminal", ["cancelled", "archived"])
@pytest.mark.asyncio
async def test_terminal_requests_cannot_be_cancelled(backend, terminal):
    seed_request(backend, id="r1", status=terminal, assigned_agent_id="agent-1")

    result = await service(backend, Role.agent).cancel_request("r1")

    assert result.error == ErrorKind.invalid_transition
    assert backend.row("inspection_requests", "r1")["status"] == terminal


@pytest.mark.asyncio
async def test_update_status_enforces_transition_table(backend):
    seed_request(backend, id="r1", status="completed", assigned_agent_id="agent-1")
    svc = service(backend, Role.admin)

    rejected = await svc.update_request_status("r1", "pending")
    accepted = await svc.update_request_status("r1", "archived")

    assert rejected.error == ErrorKind.invalid_transition
    assert accepted
    assert backend.row("inspection_requests", "r1")["status"] == "archived"


@pytest.mark.asyncio
async def test_update_status_rejects_unknown_value(backend):
    seed_request(backend, id="r1")

    result = await service(backend, Role.agent).update_request_status("r1", "teleported")

    assert result.error == ErrorKind.invalid_input
    assert backend.calls == []


@pytest.mark.asyncio
async def test_update_status_denied_for_users(backend):
    seed_request(backend, id="r1")

    result = await service(backend, Role.user).update_request_status("r1", "cancelled")

    assert result.error == ErrorKind.access_denied


@pytest.mark.asyncio
async def test_concurrent_status_change_is_update_failed(backend):
    seed_request(backend, id="r1", status="assigned", assigned_agent_id="agent-1")
    svc = service(backend, Role.agent)

    # Someone else moves the request between our read and our write
    original_update = backend.update

    async def racing_update(table, filters, data):
        backend.row("inspection_requests", "r1")["status"] = "cancelled"
        return await original_update(table, filters, data)

    backend.update = racing_update
    result = await svc.complete_request("r1")

    assert result.error == ErrorKind.update_failed
    assert backend.row("inspection_requests", "r1")["status"] == "cancelled"


def test_transition_table():
    assert can_transition(RequestStatus.pending, RequestStatus.assigned)
    assert not can_transition(RequestStatus.pending, RequestStatus.completed)
    assert can_transition(RequestStatus.completed, RequestStatus.archived)
    assert not can_transition(RequestStatus.archived, RequestStatus.pending)
    assert ALLOWED_TRANSITIONS[RequestStatus.cancelled] == set()
    for target in RequestStatus:
        assert not can_transition(RequestStatus.cancelled, target)


# ============================================================
# Payments and fees
# ============================================================
@pytest.mark.asyncio
async def test_process_payment(backend):
    seed_request(backend, id="r1", status="assigned", assigned_agent_id="agent-1")

    result = await service(backend, Role.admin).process_payment("r1", "200", "cash")

    assert result
    row = backend.row("inspection_requests", "r1")
    assert row["payment_received"] is True
    assert row["payment_method"] == "cash"
    assert row["service_fee"] == 200
    assert re.fullmatch(r"REC-\d+", row["receipt_number"])
    assert row["receipt_uploaded_at"]


@pytest.mark.parametrize("amount", ["", "abc", "0", "-5", "nan", "inf"])
@pytest.mark.asyncio
async def test_process_payment_rejects_bad_amounts(backend, amount):
    seed_request(backend, id="r1")

    result = await service(backend, Role.admin).process_payment("r1", amount, "cash")

    assert result.error == ErrorKind.invalid_input
    assert backend.calls == []


@pytest.mark.asyncio
async def test_update_fees_sums_amounts(backend):
    seed_request(backend, id="r1")
    svc = service(backend, Role.admin)

    result = await svc.update_fees("r1", "100", "50", "note")

    assert result
    row = backend.row("inspection_requests", "r1")
    assert row["service_fee"] == 150
    assert row["fee_notes"] == "note"
    assert row["updated_at"]
    assert svc.notifier.last.description == "Total amount updated to MWK 150.00"


@pytest.mark.asyncio
async def test_update_fees_rejects_non_numeric(backend):
    seed_request(backend, id="r1")

    result = await service(backend, Role.admin).update_fees("r1", "100", "lots", "")

    assert result.error == ErrorKind.invalid_input
    assert backend.row("inspection_requests", "r1")["service_fee"] == 7000


@pytest.mark.asyncio
async def test_update_fees_unknown_request_fails(backend):
    result = await service(backend, Role.admin).update_fees("missing", "100", "0", "")

    assert result.error == ErrorKind.update_failed


# ============================================================
# Payment received + receipts
# ============================================================
@pytest.mark.asyncio
async def test_mark_payment_received_issues_receipt(backend):
    seed_request(backend, id="r1", status="in_progress", assigned_agent_id="agent-1")
    svc = service(backend, Role.agent)

    result = await svc.mark_payment_received("r1")

    assert result
    row = backend.row("inspection_requests", "r1")
    assert row["payment_received"] is True
    assert row["receipt_number"] == result.value["receipt_number"]
    assert row["receipt_verification_code"] == result.value["verification_code"]
    assert row["receipt_issued_at"]
    assert row["receipt_data"]["transaction_id"] == row["tracking_id"]
    assert svc.notifier.last.title == "Payment Marked"


@pytest.mark.asyncio
async def test_mark_payment_rpc_failure_is_update_failed(backend):
    seed_request(backend, id="r1", status="in_progress", assigned_agent_id="agent-1")
    backend.fail("rpc:generate_receipt_data", "request not found")

    result = await service(backend, Role.agent).mark_payment_received("r1")

    assert result.error == ErrorKind.update_failed
    assert backend.row("inspection_requests", "r1")["payment_received"] is False


@pytest.mark.asyncio
async def test_mark_payment_receipt_failure_is_distinct(backend):
    seed_request(backend, id="r1", status="in_progress", assigned_agent_id="agent-1")
    backend.fail("update:inspection_requests", "disk full")
    svc = service(backend, Role.agent)

    result = await svc.mark_payment_received("r1")

    assert result.error == ErrorKind.receipt_generation_failed
    assert result.message == "Payment recorded but receipt could not be issued"
    # The payment itself went through
    assert backend.row("inspection_requests", "r1")["payment_received"] is True
    assert len(svc.notifier.history) == 1


@pytest.mark.asyncio
async def test_reissue_receipt_mints_new_code(backend):
    seed_request(backend, id="r1", payment_received=True, receipt_number="REC-1",
                 receipt_verification_code="OLDCODE1", receipt_issued_at="2024-01-01T00:00:00+00:00")

    result = await service(backend, Role.admin).reissue_receipt("r1")

    assert result
    code = result.value["verification_code"]
    assert code != "OLDCODE1"
    assert backend.row("inspection_requests", "r1")["receipt_verification_code"] == code


@pytest.mark.asyncio
async def test_reissue_receipt_denied_for_users(backend):
    seed_request(backend, id="r1")

    result = await service(backend, Role.user).reissue_receipt("r1")

    assert result.error == ErrorKind.access_denied


@pytest.mark.asyncio
async def test_no_backend_reports_unavailable():
    result = await WorkflowActionService(None, Role.agent, "agent-1").complete_request("r1")

    assert result.error == ErrorKind.auth_unavailable
    assert result.message == "Request completion is not available at the moment"
