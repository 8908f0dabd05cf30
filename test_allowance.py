import asyncio

import pytest

from allowance import AllowanceGuard
from conftest import OWNER, EXCHANGE, FakeLedger
from engine import WorkflowRun
from errors import AuthorizationError, ConfirmationTimeout, ConnectivityError, LedgerRejection
from models import WorkflowStage

WEI = 10 ** 18


@pytest.mark.parametrize("current, required", [(0, 0), (5, 5), (10 * WEI, 1), (2 ** 256 - 1, 10 ** 60)])
def test_sufficient_allowance_submits_no_approval(current, required):
    ledger = FakeLedger(allowance=current)

    receipt = asyncio.run(AllowanceGuard(ledger).ensure_allowance(OWNER, EXCHANGE, required))

    assert receipt is None
    ledger.get_allowance.assert_awaited_once_with(OWNER, EXCHANGE)
    ledger.submit_approval.assert_not_called()
    ledger.wait_for_confirmation.assert_not_called()


@pytest.mark.parametrize("current, required", [(0, 1), (4 * WEI, 10 * WEI), (10 ** 60, 10 ** 60 + 1)])
def test_insufficient_allowance_approves_exact_amount(current, required):
    ledger = FakeLedger(allowance=current)

    receipt = asyncio.run(AllowanceGuard(ledger).ensure_allowance(OWNER, EXCHANGE, required))

    assert receipt.tx_hash == "0xapprove"
    # Ni ilimitado ni el delta: exactamente lo requerido
    ledger.submit_approval.assert_awaited_once_with(EXCHANGE, required)
    assert ledger.labels() == ["allowance", "approve", "wait"]


def test_guard_marks_run_as_needing_approval():
    ledger = FakeLedger(allowance=0)
    run = WorkflowRun("addLiquidity")

    asyncio.run(AllowanceGuard(ledger).ensure_allowance(OWNER, EXCHANGE, WEI, run=run))

    assert run.stage == WorkflowStage.NEEDS_APPROVAL


def test_approval_submission_failure_is_authorization_error():
    ledger = FakeLedger(allowance=0)
    ledger.submit_approval.side_effect = LedgerRejection("user denied transaction signature")

    with pytest.raises(AuthorizationError, match="user denied transaction signature"):
        asyncio.run(AllowanceGuard(ledger).ensure_allowance(OWNER, EXCHANGE, WEI))


def test_approval_revert_is_authorization_error_with_tx():
    ledger = FakeLedger(allowance=0)
    ledger.confirm_failures["approve"] = LedgerRejection("approve transaction reverted")

    with pytest.raises(AuthorizationError) as exc_info:
        asyncio.run(AllowanceGuard(ledger).ensure_allowance(OWNER, EXCHANGE, WEI))

    assert exc_info.value.approval_tx == "0xapprove"
    # Fallo definitivo: no se relee el allowance
    assert ledger.get_allowance.await_count == 1


def test_confirmation_timeout_rechecks_allowance_and_continues_when_mined():
    ledger = FakeLedger(allowance=0)

    async def mined_but_timed_out(pending):
        ledger.allowance = WEI
        raise ConfirmationTimeout("not in the chain after 120 seconds", tx_hash=pending.tx_hash)

    ledger.wait_for_confirmation.side_effect = mined_but_timed_out

    receipt = asyncio.run(AllowanceGuard(ledger).ensure_allowance(OWNER, EXCHANGE, WEI))

    assert receipt.tx_hash == "0xapprove"
    assert ledger.get_allowance.await_count == 2
    ledger.submit_approval.assert_awaited_once()


def test_confirmation_timeout_with_allowance_still_short_reports_unknown_outcome():
    ledger = FakeLedger(allowance=0)
    ledger.confirm_failures["approve"] = ConfirmationTimeout("not in the chain after 120 seconds")

    with pytest.raises(AuthorizationError, match="approval outcome unknown") as exc_info:
        asyncio.run(AllowanceGuard(ledger).ensure_allowance(OWNER, EXCHANGE, WEI))

    assert "0xapprove" in exc_info.value.reason
    assert ledger.get_allowance.await_count == 2


def test_allowance_read_failure_propagates_before_any_write():
    ledger = FakeLedger()
    ledger.get_allowance.side_effect = ConnectivityError("Cannot connect to host localhost:8545")

    with pytest.raises(ConnectivityError):
        asyncio.run(AllowanceGuard(ledger).ensure_allowance(OWNER, EXCHANGE, WEI))

    ledger.submit_approval.assert_not_called()
