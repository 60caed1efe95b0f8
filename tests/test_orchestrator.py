"""
Tests for the Order Orchestrator

End-to-end flows through quote, approval, validation, network enforcement,
submission and status tracking, using in-memory collaborators.
"""

import asyncio

import pytest

from solvernet.core.order.errors import ErrorCategory
from solvernet.core.order.models import (
    ApprovalState,
    ExecutionStatus,
    OrderIntent,
    OrderPhase,
    OrderValidation,
    QuoteStatus,
    ValidationStatus,
)
from solvernet.core.order.orchestrator import OrderOrchestrator
from solvernet.core.order.quote import QuoteController

from conftest import (
    ARB_USDC,
    BASE_USDC,
    CONTRACT,
    INBOX,
    TX_HASH,
    WALLET,
    FakeOrderService,
    FakeQuoteService,
    FakeWallet,
    UserRejectedError,
)

OTHER_WALLET = "0x4444444444444444444444444444444444444444"


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def make_orchestrator(catalog, quote_service, order_service):
    def _make(wallet, spender=INBOX):
        return OrderOrchestrator(
            quotes=QuoteController(quote_service),
            order_service=order_service,
            wallet=wallet,
            spender=spender,
            catalog=catalog,
        )

    return _make


@pytest.fixture
def native_intent(catalog):
    def _intent(amount="1.5"):
        return OrderIntent(
            src_chain_id=8453,
            dest_chain_id=42161,
            src_asset=catalog.get_asset(8453),
            dest_asset=catalog.get_asset(42161),
            raw_amount=amount,
        )

    return _intent


@pytest.fixture
def usdc_intent(catalog):
    def _intent(amount="25"):
        return OrderIntent(
            src_chain_id=8453,
            dest_chain_id=42161,
            src_asset=catalog.get_asset(8453, BASE_USDC),
            dest_asset=catalog.get_asset(42161, ARB_USDC),
            raw_amount=amount,
        )

    return _intent


async def _ready(orchestrator, intent):
    snapshot = await orchestrator.set_intent(intent)
    assert snapshot.phase == OrderPhase.READY, snapshot.failure
    return snapshot


# =============================================================================
# Evaluation
# =============================================================================

class TestEvaluation:

    @pytest.mark.asyncio
    async def test_native_to_native_reaches_ready(self, make_orchestrator, native_intent, order_service):
        orchestrator = make_orchestrator(FakeWallet())

        snapshot = await _ready(orchestrator, native_intent("1.5"))

        config = snapshot.config
        assert config.deposit.amount == 1_500_000_000_000_000_000
        assert config.deposit.token is None
        assert config.expense.token is None
        assert len(config.calls) == 1
        assert config.calls[0].target == WALLET
        assert config.calls[0].value == config.expense.amount
        assert config.calls[0].function_name is None
        assert config.validate_enabled is True
        assert snapshot.approval.state == ApprovalState.NOT_APPLICABLE
        assert snapshot.validation.status == ValidationStatus.ACCEPTED
        assert order_service.validated == [config]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["", "0"])
    async def test_unquotable_amount_stays_idle(self, make_orchestrator, native_intent, quote_service, amount):
        orchestrator = make_orchestrator(FakeWallet())

        snapshot = await orchestrator.set_intent(native_intent(amount))

        assert snapshot.phase == OrderPhase.IDLE
        assert snapshot.quote.status == QuoteStatus.DISABLED
        assert quote_service.requests == []

    @pytest.mark.asyncio
    async def test_non_numeric_amount_reports_input_error(self, make_orchestrator, native_intent, quote_service):
        orchestrator = make_orchestrator(FakeWallet())

        snapshot = await orchestrator.set_intent(native_intent("abc"))

        assert snapshot.phase == OrderPhase.IDLE
        assert snapshot.failure.category == ErrorCategory.INPUT_INVALID
        assert quote_service.requests == []

    @pytest.mark.asyncio
    async def test_disconnected_wallet_never_validates(self, make_orchestrator, native_intent, order_service):
        orchestrator = make_orchestrator(FakeWallet(address=None))

        snapshot = await orchestrator.set_intent(native_intent("1"))

        assert snapshot.phase == OrderPhase.AWAITING_INPUT
        assert snapshot.config.validate_enabled is False
        assert snapshot.config.calls == ()
        assert snapshot.config.expense.amount == 0
        assert "Wallet not connected" in snapshot.failure.message
        assert order_service.validated == []

    @pytest.mark.asyncio
    async def test_quote_failure(self, make_orchestrator, native_intent, quote_service, order_service):
        quote_service.error = RuntimeError("solver unavailable")
        orchestrator = make_orchestrator(FakeWallet())

        snapshot = await orchestrator.set_intent(native_intent("1"))

        assert snapshot.phase == OrderPhase.QUOTE_FAILED
        assert snapshot.failure.category == ErrorCategory.QUOTE_FAILED
        assert "solver unavailable" in snapshot.failure.message
        assert snapshot.config.validate_enabled is False
        assert order_service.validated == []

    @pytest.mark.asyncio
    async def test_quote_failure_clears_on_new_amount(self, make_orchestrator, native_intent, quote_service):
        quote_service.error = RuntimeError("solver unavailable")
        orchestrator = make_orchestrator(FakeWallet())
        await orchestrator.set_intent(native_intent("1"))

        quote_service.error = None
        snapshot = await orchestrator.set_intent(native_intent("2"))

        assert snapshot.phase == OrderPhase.READY
        assert snapshot.failure is None

    @pytest.mark.asyncio
    async def test_validation_rejected(self, make_orchestrator, native_intent, order_service):
        order_service.validation = OrderValidation(
            status=ValidationStatus.REJECTED,
            reject_reason="ExpenseUnderMin",
            reject_description="expense below solver minimum",
        )
        orchestrator = make_orchestrator(FakeWallet())

        snapshot = await orchestrator.set_intent(native_intent("0.0001"))

        assert snapshot.phase == OrderPhase.VALIDATION_REJECTED
        assert snapshot.failure.category == ErrorCategory.VALIDATION_REJECTED
        assert "ExpenseUnderMin" in snapshot.failure.message
        assert snapshot.failure.recoverable is False

    @pytest.mark.asyncio
    async def test_validation_service_error(self, make_orchestrator, native_intent):
        class BrokenOrders(FakeOrderService):
            async def validate(self, config):
                raise ConnectionError("check endpoint down")

        orchestrator = OrderOrchestrator(
            quotes=QuoteController(FakeQuoteService()),
            order_service=BrokenOrders(),
            wallet=FakeWallet(),
            spender=INBOX,
        )

        snapshot = await orchestrator.set_intent(native_intent("1"))

        assert snapshot.phase == OrderPhase.AWAITING_INPUT
        assert snapshot.failure.category == ErrorCategory.UNKNOWN
        assert "check endpoint down" in snapshot.failure.message
        assert snapshot.validation is None

    @pytest.mark.asyncio
    async def test_unchanged_inputs_are_not_revalidated(self, make_orchestrator, native_intent, quote_service, order_service):
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))

        snapshot = await orchestrator.refresh()

        assert snapshot.phase == OrderPhase.READY
        assert len(quote_service.requests) == 1
        assert len(order_service.validated) == 1

    @pytest.mark.asyncio
    async def test_amount_change_requotes_and_revalidates(self, make_orchestrator, native_intent, quote_service, order_service):
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))

        snapshot = await _ready(orchestrator, native_intent("2"))

        assert snapshot.config.deposit.amount == 2 * 10**18
        assert len(quote_service.requests) == 2
        assert len(order_service.validated) == 2

    @pytest.mark.asyncio
    async def test_superseded_validation_is_discarded(self, catalog, native_intent):
        release = asyncio.Event()

        class SlowFirstOrders(FakeOrderService):
            async def validate(self, config):
                self.validated.append(config)
                if len(self.validated) == 1:
                    await release.wait()
                    return OrderValidation(status=ValidationStatus.REJECTED, reject_reason="Stale")
                return OrderValidation(status=ValidationStatus.ACCEPTED)

        orders = SlowFirstOrders()
        orchestrator = OrderOrchestrator(
            quotes=QuoteController(FakeQuoteService()),
            order_service=orders,
            wallet=FakeWallet(),
            spender=INBOX,
            catalog=catalog,
        )

        first = asyncio.ensure_future(orchestrator.set_intent(native_intent("1")))
        while not orders.validated:
            await asyncio.sleep(0)

        snapshot = await orchestrator.set_intent(native_intent("2"))
        release.set()
        await first

        assert snapshot.phase == OrderPhase.READY
        assert orchestrator.phase == OrderPhase.READY
        assert orchestrator.snapshot.validation.is_accepted
        assert orchestrator.snapshot.config.deposit.amount == 2 * 10**18

    @pytest.mark.asyncio
    async def test_wallet_account_change_rebuilds_payout(self, make_orchestrator, native_intent):
        wallet = FakeWallet()
        orchestrator = make_orchestrator(wallet)
        await _ready(orchestrator, native_intent("1"))

        wallet.connect(OTHER_WALLET)
        snapshot = await orchestrator.handle_wallet_change()

        assert snapshot.phase == OrderPhase.READY
        assert snapshot.config.calls[0].target == OTHER_WALLET


# =============================================================================
# Approval
# =============================================================================

class TestApprovalFlow:

    @pytest.mark.asyncio
    async def test_zero_allowance_requires_approval_before_ready(self, make_orchestrator, usdc_intent, order_service):
        orchestrator = make_orchestrator(FakeWallet(allowance=0))

        snapshot = await orchestrator.set_intent(usdc_intent("25"))

        assert snapshot.phase == OrderPhase.APPROVAL_REQUIRED
        assert snapshot.approval.state == ApprovalState.INSUFFICIENT
        assert snapshot.approval.required_amount == 25_000_000
        assert snapshot.config.validate_enabled is False
        assert order_service.validated == []

    @pytest.mark.asyncio
    async def test_approve_then_ready(self, make_orchestrator, usdc_intent):
        wallet = FakeWallet(allowance=0)
        orchestrator = make_orchestrator(wallet)
        await orchestrator.set_intent(usdc_intent("25"))

        snapshot = await orchestrator.approve()

        assert wallet.approvals[0]["amount"] == 25_000_000
        assert wallet.approvals[0]["spender"] == INBOX
        assert snapshot.approval.state == ApprovalState.SUFFICIENT
        assert snapshot.phase == OrderPhase.READY
        phases = [t.to_phase for t in orchestrator.history]
        assert phases.index(OrderPhase.APPROVING) < phases.index(OrderPhase.READY)

    @pytest.mark.asyncio
    async def test_token_config_uses_transfer_call(self, make_orchestrator, usdc_intent):
        orchestrator = make_orchestrator(FakeWallet(allowance=10**12))

        snapshot = await _ready(orchestrator, usdc_intent("25"))

        config = snapshot.config
        assert config.deposit.token == BASE_USDC
        assert config.expense.token == ARB_USDC
        assert config.calls[0].target == ARB_USDC
        assert config.calls[0].function_name == "transfer"
        assert config.calls[0].args == (WALLET, config.expense.amount)

    @pytest.mark.asyncio
    async def test_refresh_during_allowance_read_reaches_ready(self, make_orchestrator, usdc_intent, order_service):
        wallet = FakeWallet(allowance=10**12)
        release = asyncio.Event()
        original = wallet.get_allowance
        reads = []

        async def slow_read(*args):
            reads.append(args)
            await release.wait()
            return await original(*args)

        wallet.get_allowance = slow_read
        orchestrator = make_orchestrator(wallet)

        first = asyncio.ensure_future(orchestrator.set_intent(usdc_intent("25")))
        while not reads:
            await asyncio.sleep(0)
        second = asyncio.ensure_future(orchestrator.refresh())
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(first, second)

        assert orchestrator.phase == OrderPhase.READY
        assert orchestrator.approval.state == ApprovalState.SUFFICIENT
        assert wallet.allowance_reads == 1
        assert len(order_service.validated) == 1

    @pytest.mark.asyncio
    async def test_rejected_approval_stays_blocked(self, make_orchestrator, usdc_intent, order_service):
        wallet = FakeWallet(allowance=0)
        wallet.approve_error = UserRejectedError("User rejected the request.")
        orchestrator = make_orchestrator(wallet)
        await orchestrator.set_intent(usdc_intent("25"))

        snapshot = await orchestrator.approve()

        assert snapshot.phase == OrderPhase.APPROVAL_REQUIRED
        assert snapshot.failure.category == ErrorCategory.APPROVAL_REJECTED
        assert order_service.validated == []

    @pytest.mark.asyncio
    async def test_observed_approval_unblocks(self, make_orchestrator, usdc_intent):
        wallet = FakeWallet(allowance=0)
        orchestrator = make_orchestrator(wallet)
        await orchestrator.set_intent(usdc_intent("25"))

        wallet.allowance = 25_000_000
        snapshot = await orchestrator.on_approval_observed()

        assert snapshot.phase == OrderPhase.READY

    @pytest.mark.asyncio
    async def test_unknown_spender_blocks_token_orders(self, make_orchestrator, usdc_intent, order_service):
        orchestrator = make_orchestrator(FakeWallet(allowance=10**12), spender=None)

        snapshot = await orchestrator.set_intent(usdc_intent("25"))

        assert snapshot.phase == OrderPhase.AWAITING_INPUT
        assert snapshot.approval.state == ApprovalState.UNKNOWN
        assert order_service.validated == []

        orchestrator.set_spender(INBOX)
        snapshot = await orchestrator.refresh()

        assert snapshot.phase == OrderPhase.READY

    @pytest.mark.asyncio
    async def test_approve_outside_approval_phase_is_noop(self, make_orchestrator, native_intent):
        wallet = FakeWallet()
        orchestrator = make_orchestrator(wallet)
        await _ready(orchestrator, native_intent("1"))

        snapshot = await orchestrator.approve()

        assert snapshot.phase == OrderPhase.READY
        assert wallet.approvals == []


# =============================================================================
# Contract calls
# =============================================================================

class TestContractCalls:

    @pytest.mark.asyncio
    async def test_missing_argument_blocks_submission(self, make_orchestrator, native_intent, order_service):
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))

        snapshot = await orchestrator.set_contract_call(CONTRACT, "stake(uint256 amount)", {})

        assert snapshot.phase == OrderPhase.AWAITING_INPUT
        assert snapshot.config.has_incomplete_calls
        assert snapshot.config.calls[1].args == ("0",)
        assert snapshot.config.validate_enabled is False
        assert snapshot.failure.category == ErrorCategory.INPUT_INVALID

        await orchestrator.execute()
        assert order_service.submitted == []

    @pytest.mark.asyncio
    async def test_completing_arguments_revalidates(self, make_orchestrator, native_intent, order_service):
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))
        await orchestrator.set_contract_call(CONTRACT, "stake(uint256 amount)", {})

        snapshot = await orchestrator.set_function_input("amount", "5")

        assert snapshot.phase == OrderPhase.READY
        assert snapshot.config.calls[1].args == ("5",)
        assert len(order_service.validated) == 2

    @pytest.mark.asyncio
    async def test_token_destination_call_sets_expense_spender(self, make_orchestrator, usdc_intent):
        orchestrator = make_orchestrator(FakeWallet(allowance=10**12))
        await orchestrator.set_intent(usdc_intent("25"))

        snapshot = await orchestrator.set_contract_call(CONTRACT, "deposit(uint256 amount)", {"amount": "1"})

        assert snapshot.phase == OrderPhase.READY
        assert snapshot.config.expense.spender == CONTRACT

    @pytest.mark.asyncio
    async def test_invalid_contract_address_blocks(self, make_orchestrator, native_intent):
        orchestrator = make_orchestrator(FakeWallet())
        await orchestrator.set_intent(native_intent("1"))

        snapshot = await orchestrator.set_contract_call("0x1234", "stake(uint256 amount)", {"amount": "1"})

        assert snapshot.phase == OrderPhase.AWAITING_INPUT
        assert snapshot.failure.category == ErrorCategory.INPUT_INVALID
        assert len(snapshot.config.calls) == 1

    @pytest.mark.asyncio
    async def test_clearing_the_call_restores_ready(self, make_orchestrator, native_intent):
        orchestrator = make_orchestrator(FakeWallet())
        await orchestrator.set_intent(native_intent("1"))
        await orchestrator.set_contract_call(CONTRACT, "stake(uint256 amount)", {})

        snapshot = await orchestrator.set_contract_call("")

        assert snapshot.phase == OrderPhase.READY
        assert len(snapshot.config.calls) == 1


# =============================================================================
# Execution
# =============================================================================

class TestExecution:

    @pytest.mark.asyncio
    async def test_submit_on_matching_chain(self, make_orchestrator, native_intent, order_service):
        wallet = FakeWallet(chain_id=8453)
        orchestrator = make_orchestrator(wallet)
        await _ready(orchestrator, native_intent("1"))

        snapshot = await orchestrator.execute()

        assert snapshot.phase == OrderPhase.OPEN
        assert snapshot.execution.status == ExecutionStatus.OPEN
        assert snapshot.execution.tx_hash == TX_HASH
        assert snapshot.execution.explorer_url == f"https://basescan.org/tx/{TX_HASH}"
        assert wallet.switch_requests == []
        assert len(order_service.submitted) == 1

    @pytest.mark.asyncio
    async def test_wrong_chain_switches_before_submitting(self, make_orchestrator, native_intent, order_service):
        wallet = FakeWallet(chain_id=1)
        orchestrator = make_orchestrator(wallet)
        await _ready(orchestrator, native_intent("1"))

        snapshot = await orchestrator.execute()

        assert snapshot.phase == OrderPhase.AWAITING_NETWORK_SWITCH
        assert snapshot.execution.status == ExecutionStatus.AWAITING_NETWORK_SWITCH
        assert wallet.switch_requests == [8453]
        assert order_service.submitted == []

        wallet.move_to(8453)
        snapshot = await orchestrator.execute()

        assert snapshot.phase == OrderPhase.OPEN
        assert len(order_service.submitted) == 1

    @pytest.mark.asyncio
    async def test_wallet_chain_change_returns_to_ready(self, make_orchestrator, native_intent):
        wallet = FakeWallet(chain_id=1)
        orchestrator = make_orchestrator(wallet)
        await _ready(orchestrator, native_intent("1"))
        await orchestrator.execute()

        wallet.move_to(8453)
        snapshot = await orchestrator.handle_wallet_change()

        assert snapshot.phase == OrderPhase.READY
        assert snapshot.execution.status == ExecutionStatus.IDLE

    @pytest.mark.asyncio
    async def test_rejected_switch_reports_network_mismatch(self, make_orchestrator, native_intent, order_service):
        wallet = FakeWallet(chain_id=1)
        wallet.switch_error = UserRejectedError("User rejected the request.")
        orchestrator = make_orchestrator(wallet)
        await _ready(orchestrator, native_intent("1"))

        snapshot = await orchestrator.execute()

        assert snapshot.phase == OrderPhase.READY
        assert snapshot.failure.category == ErrorCategory.NETWORK_MISMATCH
        assert order_service.submitted == []

    @pytest.mark.asyncio
    async def test_execute_waits_for_account_change_evaluation(self, make_orchestrator, usdc_intent, order_service):
        wallet = FakeWallet(allowance=10**12)
        release = asyncio.Event()
        original = wallet.get_allowance
        reads = []

        async def slow_later_reads(*args):
            reads.append(args)
            if len(reads) > 1:
                await release.wait()
            return await original(*args)

        wallet.get_allowance = slow_later_reads
        orchestrator = make_orchestrator(wallet)
        await _ready(orchestrator, usdc_intent("25"))

        wallet.connect(OTHER_WALLET)
        pending = asyncio.ensure_future(orchestrator.handle_wallet_change())
        while len(reads) < 2:
            await asyncio.sleep(0)

        snapshot = await orchestrator.execute()

        assert order_service.submitted == []
        assert snapshot.phase == OrderPhase.READY

        release.set()
        snapshot = await pending

        assert snapshot.phase == OrderPhase.READY
        assert snapshot.config.calls[0].args[0] == OTHER_WALLET

        snapshot = await orchestrator.execute()

        assert snapshot.phase == OrderPhase.OPEN
        assert len(order_service.submitted) == 1
        assert order_service.submitted[0].calls[0].args[0] == OTHER_WALLET

    @pytest.mark.asyncio
    async def test_execute_after_unreported_account_change_reevaluates(
        self, make_orchestrator, native_intent, order_service
    ):
        wallet = FakeWallet()
        orchestrator = make_orchestrator(wallet)
        await _ready(orchestrator, native_intent("1"))

        wallet.connect(OTHER_WALLET)
        snapshot = await orchestrator.execute()

        assert order_service.submitted == []
        assert snapshot.phase == OrderPhase.READY
        assert snapshot.config.calls[0].target == OTHER_WALLET

        snapshot = await orchestrator.execute()

        assert snapshot.phase == OrderPhase.OPEN
        assert order_service.submitted[0].calls[0].target == OTHER_WALLET

    @pytest.mark.asyncio
    async def test_refresh_after_submission_leaves_order_open(self, make_orchestrator, native_intent):
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))
        await orchestrator.execute()

        snapshot = await orchestrator.refresh()

        assert snapshot.phase == OrderPhase.OPEN
        assert snapshot.execution.tx_hash == TX_HASH

    @pytest.mark.asyncio
    async def test_execute_before_ready_is_noop(self, make_orchestrator, usdc_intent, order_service):
        orchestrator = make_orchestrator(FakeWallet(allowance=0))
        await orchestrator.set_intent(usdc_intent("25"))

        snapshot = await orchestrator.execute()

        assert snapshot.phase == OrderPhase.APPROVAL_REQUIRED
        assert order_service.submitted == []

    @pytest.mark.asyncio
    async def test_cancelled_submission_is_terminal_error(self, make_orchestrator, native_intent, order_service):
        order_service.submit_error = UserRejectedError("User denied transaction signature")
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))

        snapshot = await orchestrator.execute()

        assert snapshot.phase == OrderPhase.ERROR
        assert snapshot.execution.status == ExecutionStatus.ERROR
        assert snapshot.failure.category == ErrorCategory.SUBMISSION_REJECTED

    @pytest.mark.asyncio
    async def test_failed_submission_is_terminal_error(self, make_orchestrator, native_intent, order_service):
        order_service.submit_error = RuntimeError("execution reverted")
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))

        snapshot = await orchestrator.execute()

        assert snapshot.phase == OrderPhase.ERROR
        assert snapshot.failure.category == ErrorCategory.SUBMISSION_FAILED
        assert "execution reverted" in snapshot.failure.message

    @pytest.mark.asyncio
    async def test_status_stream_fills_order(self, make_orchestrator, native_intent, order_service):
        order_service.statuses = ["open", "filled"]
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))

        await orchestrator.execute()
        await orchestrator._status_task

        assert orchestrator.phase == OrderPhase.FILLED
        assert orchestrator.snapshot.execution.status == ExecutionStatus.FILLED
        assert orchestrator.snapshot.execution.tx_hash == TX_HASH

    @pytest.mark.asyncio
    async def test_status_stream_rejects_order(self, make_orchestrator, native_intent, order_service):
        order_service.statuses = ["rejected"]
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))

        await orchestrator.execute()
        await orchestrator._status_task

        assert orchestrator.phase == OrderPhase.REJECTED
        assert orchestrator.snapshot.failure is not None

    @pytest.mark.asyncio
    async def test_status_for_other_transaction_is_ignored(self, make_orchestrator, native_intent):
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))
        await orchestrator.execute()

        snapshot = await orchestrator.handle_status_update("filled", "0xdeadbeef")

        assert snapshot.phase == OrderPhase.OPEN

    @pytest.mark.asyncio
    async def test_status_before_submission_is_ignored(self, make_orchestrator, native_intent):
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))

        snapshot = await orchestrator.handle_status_update("filled")

        assert snapshot.phase == OrderPhase.READY


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_intent_change_while_open_is_deferred(self, make_orchestrator, native_intent, order_service):
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))
        await orchestrator.execute()

        snapshot = await orchestrator.set_intent(native_intent("3"))

        assert snapshot.phase == OrderPhase.OPEN
        assert snapshot.intent.raw_amount == "1"
        assert len(order_service.submitted) == 1

        snapshot = await orchestrator.reset()

        assert snapshot.phase == OrderPhase.READY
        assert snapshot.intent.raw_amount == "3"
        assert snapshot.execution.status == ExecutionStatus.IDLE

    @pytest.mark.asyncio
    async def test_new_intent_after_terminal_starts_fresh_attempt(self, make_orchestrator, native_intent, order_service):
        order_service.submit_error = RuntimeError("execution reverted")
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))
        await orchestrator.execute()
        first_attempt = orchestrator.attempt_id

        order_service.submit_error = None
        snapshot = await orchestrator.set_intent(native_intent("2"))

        assert snapshot.phase == OrderPhase.READY
        assert snapshot.failure is None
        assert orchestrator.attempt_id != first_attempt

    @pytest.mark.asyncio
    async def test_transitions_are_recorded_and_broadcast(self, make_orchestrator, native_intent):
        seen = []

        async def listener(transition, snapshot):
            seen.append((transition.to_phase, snapshot.phase))

        orchestrator = make_orchestrator(FakeWallet())
        orchestrator.register_listener(listener)

        await _ready(orchestrator, native_intent("1"))

        assert [t.to_phase for t in orchestrator.history] == [
            OrderPhase.QUOTING,
            OrderPhase.VALIDATING,
            OrderPhase.READY,
        ]
        assert seen == [(phase, phase) for phase in (OrderPhase.QUOTING, OrderPhase.VALIDATING, OrderPhase.READY)]
        assert orchestrator.history[-1].to_dict()["toPhase"] == "ready"

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_flow(self, make_orchestrator, native_intent):
        async def listener(transition, snapshot):
            raise RuntimeError("listener crashed")

        orchestrator = make_orchestrator(FakeWallet())
        orchestrator.register_listener(listener)

        snapshot = await orchestrator.set_intent(native_intent("1"))

        assert snapshot.phase == OrderPhase.READY

    def test_committed_phases_cannot_jump_back(self):
        assert OrderPhase.READY not in OrderOrchestrator.TRANSITIONS[OrderPhase.SUBMITTING]
        assert OrderOrchestrator.TRANSITIONS[OrderPhase.FILLED] == {OrderPhase.IDLE}

    @pytest.mark.asyncio
    async def test_snapshot_serializes(self, make_orchestrator, native_intent):
        orchestrator = make_orchestrator(FakeWallet())
        snapshot = await _ready(orchestrator, native_intent("1"))

        data = snapshot.to_dict()

        assert data["phase"] == "ready"
        assert data["config"]["deposit"]["amount"] == "1000000000000000000"
        assert data["approval"]["state"] == "not_applicable"


# =============================================================================
# Contract inspection
# =============================================================================

class FakeAbiLookup:
    def __init__(self, abi):
        self.abi = abi
        self.lookups = []

    async def get_abi(self, address, chain_id):
        self.lookups.append((address, chain_id))
        return self.abi


class TestContractInspection:

    @pytest.mark.asyncio
    async def test_load_select_and_fill_function(self, catalog, quote_service, order_service, native_intent):
        lookup = FakeAbiLookup([
            {
                "type": "function",
                "name": "stake",
                "inputs": [{"name": "amount", "type": "uint256"}],
                "stateMutability": "payable",
            },
            {"type": "function", "name": "totalStaked", "inputs": [], "stateMutability": "view"},
            {"type": "event", "name": "Staked", "inputs": []},
        ])
        orchestrator = OrderOrchestrator(
            quotes=QuoteController(quote_service),
            order_service=order_service,
            wallet=FakeWallet(),
            spender=INBOX,
            catalog=catalog,
            abi_lookup=lookup,
        )
        await _ready(orchestrator, native_intent("1"))

        functions = await orchestrator.load_contract(CONTRACT)

        assert [fn.name for fn in functions] == ["stake"]
        assert lookup.lookups == [(CONTRACT, 42161)]

        snapshot = await orchestrator.select_function("stake")
        assert snapshot.phase == OrderPhase.AWAITING_INPUT
        assert snapshot.config.has_incomplete_calls

        snapshot = await orchestrator.set_function_input("amount", "5")
        assert snapshot.phase == OrderPhase.READY
        assert snapshot.config.calls[1].function_name == "stake"

    @pytest.mark.asyncio
    async def test_unknown_function_is_ignored(self, make_orchestrator, native_intent):
        orchestrator = make_orchestrator(FakeWallet())
        await _ready(orchestrator, native_intent("1"))

        snapshot = await orchestrator.select_function("stake")

        assert snapshot.phase == OrderPhase.READY
        assert len(snapshot.config.calls) == 1
