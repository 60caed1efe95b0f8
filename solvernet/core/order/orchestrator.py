"""
Order Orchestrator

Owns one order attempt: turns the user's intent into a quote, a call list and
an approval verdict, derives the ``OrderConfig``, has it validated by the
order service, and drives execution through network enforcement, submission
and status tracking.

Every public method returns an ``OrderSnapshot``; failures are reported as
state (``snapshot.failure``), never raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Dict, List, Mapping, Optional, Set, Tuple
from uuid import uuid4

from ...services.address import is_valid_address
from .approval import ApprovalGate
from .builder import build_order_config
from .calls import CallBuilder, ContractInspector, FunctionRef
from .catalog import AssetCatalog
from .errors import (
    InputInvalid,
    InvalidAddress,
    NetworkMismatch,
    OrderError,
    OrderFailure,
    QuoteFailed,
    SubmissionFailed,
    SubmissionRejected,
    UnknownError,
    ValidationRejected,
    failure_from_exception,
    is_user_rejection,
)
from .generation import RequestGeneration
from .models import (
    ApprovalRequirement,
    ApprovalState,
    ContractFunction,
    ExecutionStatus,
    OrderConfig,
    OrderExecution,
    OrderIntent,
    OrderPhase,
    OrderSnapshot,
    OrderValidation,
    PhaseTransition,
    Quote,
    ValidationStatus,
)
from .network import NetworkGuard
from .quote import QuoteController


TransitionListener = Callable[[PhaseTransition, OrderSnapshot], Coroutine[Any, Any, None]]


class InvalidTransitionError(Exception):
    """Raised internally when a phase change is not allowed."""

    def __init__(self, from_phase: OrderPhase, to_phase: OrderPhase):
        super().__init__(f"Invalid transition from {from_phase.value} to {to_phase.value}")
        self.from_phase = from_phase
        self.to_phase = to_phase


# Phases in which inputs may still change the order
PRE_SUBMISSION_PHASES: Set[OrderPhase] = {
    OrderPhase.IDLE,
    OrderPhase.QUOTING,
    OrderPhase.QUOTE_FAILED,
    OrderPhase.AWAITING_INPUT,
    OrderPhase.APPROVAL_REQUIRED,
    OrderPhase.APPROVING,
    OrderPhase.VALIDATING,
    OrderPhase.VALIDATION_REJECTED,
    OrderPhase.READY,
    OrderPhase.AWAITING_NETWORK_SWITCH,
}

COMMITTED_PHASES: Set[OrderPhase] = {OrderPhase.SUBMITTING, OrderPhase.OPEN}

TERMINAL_PHASES: Set[OrderPhase] = {OrderPhase.FILLED, OrderPhase.REJECTED, OrderPhase.ERROR}

_STATUS_TO_PHASE: Dict[str, OrderPhase] = {
    "filled": OrderPhase.FILLED,
    "rejected": OrderPhase.REJECTED,
    "error": OrderPhase.ERROR,
}


def _build_transitions() -> Dict[OrderPhase, Set[OrderPhase]]:
    transitions: Dict[OrderPhase, Set[OrderPhase]] = {
        phase: set(PRE_SUBMISSION_PHASES) for phase in PRE_SUBMISSION_PHASES
    }
    transitions[OrderPhase.READY].add(OrderPhase.SUBMITTING)
    transitions[OrderPhase.AWAITING_NETWORK_SWITCH].add(OrderPhase.SUBMITTING)
    transitions[OrderPhase.SUBMITTING] = {OrderPhase.OPEN, OrderPhase.ERROR}
    transitions[OrderPhase.OPEN] = {
        OrderPhase.FILLED,
        OrderPhase.REJECTED,
        OrderPhase.ERROR,
        OrderPhase.IDLE,  # Abandoned by the user
    }
    for phase in TERMINAL_PHASES:
        transitions[phase] = {OrderPhase.IDLE}
    return transitions


class OrderOrchestrator:
    """
    Drives a single order attempt.

    Features:
    - Re-evaluates quote, approval and validation whenever inputs change
    - Discards responses that belong to superseded inputs
    - Requests a network switch instead of submitting on the wrong chain
    - Follows the order service's status stream after submission

    Usage:
        orchestrator = OrderOrchestrator(
            catalog=catalog, quotes=QuoteController(solver), order_service=orders,
            wallet=wallet, spender=inbox_address,
        )
        await orchestrator.set_intent(intent)
        await orchestrator.approve()      # when phase is approval_required
        await orchestrator.execute()      # when phase is ready
    """

    TRANSITIONS: Dict[OrderPhase, Set[OrderPhase]] = _build_transitions()

    def __init__(
        self,
        *,
        quotes: QuoteController,
        order_service: Any,
        wallet: Any,
        spender: Optional[str] = None,
        catalog: Optional[AssetCatalog] = None,
        abi_lookup: Optional[Any] = None,
        approval_gate: Optional[ApprovalGate] = None,
        network_guard: Optional[NetworkGuard] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.attempt_id = str(uuid4())
        self._quotes = quotes
        self._orders = order_service
        self._wallet = wallet
        self._spender = spender
        self._catalog = catalog
        self._gate = approval_gate or ApprovalGate(wallet, logger=self.logger)
        self._guard = network_guard or NetworkGuard(wallet, logger=self.logger)
        self._inspector = ContractInspector(abi_lookup, logger=self.logger) if abi_lookup else None

        self._evaluation = RequestGeneration("evaluation")
        self._evaluations_in_flight = 0
        self._validation_generation = RequestGeneration("validation")

        self._intent: Optional[OrderIntent] = None
        self._pending_intent: Optional[OrderIntent] = None
        self._contract_address: Optional[str] = None
        self._function: Optional[ContractFunction] = None
        self._function_inputs: Dict[str, str] = {}
        self._function_failure: Optional[OrderFailure] = None
        self._last_owner: Optional[str] = wallet.address

        self._phase = OrderPhase.IDLE
        self._failure: Optional[OrderFailure] = None
        self._config: Optional[OrderConfig] = None
        self._validation: Optional[OrderValidation] = None
        self._validated_key: Optional[Tuple[str, ApprovalState]] = None
        self._execution = OrderExecution()
        self._status_task: Optional[asyncio.Task] = None

        self.history: List[PhaseTransition] = []
        self._listeners: List[TransitionListener] = []

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def phase(self) -> OrderPhase:
        return self._phase

    @property
    def quote(self) -> Quote:
        return self._quotes.current

    @property
    def approval(self) -> ApprovalRequirement:
        return self._gate.requirement

    @property
    def inspector(self) -> Optional[ContractInspector]:
        return self._inspector

    @property
    def snapshot(self) -> OrderSnapshot:
        return OrderSnapshot(
            phase=self._phase,
            intent=self._intent,
            quote=self._quotes.current,
            approval=self._gate.requirement,
            config=self._config,
            validation=self._validation,
            execution=self._execution,
            failure=self._failure,
        )

    @property
    def is_committed(self) -> bool:
        return self._phase in COMMITTED_PHASES

    @property
    def is_terminal(self) -> bool:
        return self._phase in TERMINAL_PHASES

    def register_listener(self, listener: TransitionListener) -> None:
        """Register an async callback invoked after every phase change."""
        self._listeners.append(listener)

    async def _transition_to(
        self,
        to_phase: OrderPhase,
        reason: Optional[str] = None,
        failure: Optional[OrderFailure] = None,
    ) -> None:
        from_phase = self._phase
        self._failure = failure
        if to_phase == from_phase:
            return
        if to_phase not in self.TRANSITIONS.get(from_phase, set()):
            raise InvalidTransitionError(from_phase, to_phase)

        transition = PhaseTransition(from_phase=from_phase, to_phase=to_phase, reason=reason, failure=failure)
        self._phase = to_phase
        self.history.append(transition)

        log = self.logger.warning if failure is not None else self.logger.info
        log(
            f"Order {self.attempt_id}: {from_phase.value} -> {to_phase.value}"
            f"{f' ({reason})' if reason else ''}"
        )

        snapshot = self.snapshot
        for listener in self._listeners:
            try:
                await listener(transition, snapshot)
            except Exception as e:
                self.logger.error(f"Transition listener error: {e}")

    # ─────────────────────────────────────────────────────────────────────────
    # Inputs
    # ─────────────────────────────────────────────────────────────────────────

    async def set_intent(self, intent: OrderIntent) -> OrderSnapshot:
        """Replace the intent and re-evaluate.

        While an execution is in flight the new intent is held back and
        applied by ``reset()``; the committed order is not disturbed.
        """

        if self.is_committed:
            self.logger.info(f"Order {self.attempt_id}: intent change deferred, execution in flight")
            self._pending_intent = intent
            return self.snapshot
        if self.is_terminal:
            await self._rearm()
        self._intent = intent
        return await self.refresh()

    async def set_contract_call(
        self,
        contract_address: Optional[str],
        function: Optional[FunctionRef] = None,
        inputs: Optional[Mapping[str, str]] = None,
    ) -> OrderSnapshot:
        """Set (or with a blank address, clear) the arbitrary destination call."""

        if self.is_committed:
            return self.snapshot
        if self.is_terminal:
            await self._rearm()
        self._contract_address = (contract_address or "").strip() or None
        self._function_inputs = dict(inputs or {})
        self._function = None
        self._function_failure = None
        if function is not None:
            try:
                self._function = CallBuilder.resolve_function(function)
            except OrderError as exc:
                self._function_failure = exc.to_failure()
        return await self.refresh()

    async def load_contract(self, contract_address: str) -> List[ContractFunction]:
        """Look up the contract's ABI on the destination chain for the function picker."""

        if self._inspector is None or self._intent is None:
            return []
        await self.set_contract_call(contract_address)
        return await self._inspector.load(contract_address, self._intent.dest_chain_id)

    async def select_function(self, name: str) -> OrderSnapshot:
        """Pick a write function from the loaded ABI; its inputs start empty."""

        function = self._inspector.find(name) if self._inspector else None
        if function is None:
            return self.snapshot
        return await self.set_contract_call(
            self._contract_address,
            function,
            ContractInspector.empty_inputs(function),
        )

    async def set_function_input(self, name: str, value: str) -> OrderSnapshot:
        if self._function is None or self.is_committed:
            return self.snapshot
        inputs = dict(self._function_inputs)
        inputs[name] = value
        return await self.set_contract_call(self._contract_address, self._function, inputs)

    def set_spender(self, spender: Optional[str]) -> None:
        self._spender = spender

    # ─────────────────────────────────────────────────────────────────────────
    # Evaluation
    # ─────────────────────────────────────────────────────────────────────────

    async def refresh(self) -> OrderSnapshot:
        """Re-run quote → approval → config → validation for the current inputs."""

        if self.is_committed or self.is_terminal:
            return self.snapshot
        self._evaluations_in_flight += 1
        try:
            await self._evaluate(self._evaluation.next())
        except InvalidTransitionError as exc:
            self.logger.warning(f"Order {self.attempt_id}: dropping stale evaluation result: {exc}")
        except Exception as exc:
            self.logger.exception(f"Order {self.attempt_id}: evaluation failed")
            if not self.is_committed and not self.is_terminal:
                await self._transition_to(OrderPhase.AWAITING_INPUT, "evaluation failed", failure_from_exception(exc))
        finally:
            self._evaluations_in_flight -= 1
        return self.snapshot

    def _superseded(self, generation: int) -> bool:
        return not self._evaluation.is_current(generation) or self.is_committed or self.is_terminal

    async def _evaluate(self, generation: int) -> None:
        intent = self._intent
        self._last_owner = self._wallet.address

        if intent is None or intent.src_asset is None or intent.dest_asset is None:
            self._clear_derived()
            await self._transition_to(OrderPhase.IDLE, "assets not selected")
            return

        if not QuoteController.is_quotable(intent):
            self._clear_derived()
            self._config = self._build_config(intent, self._quotes.current, self._gate.requirement)
            failure = None
            if intent.raw_amount.strip():
                failure = InputInvalid(
                    f"Amount {intent.raw_amount!r} must be a positive number",
                    details={"amount": intent.raw_amount},
                ).to_failure()
            await self._transition_to(OrderPhase.IDLE, "amount not quotable", failure)
            return

        contract_failure = self._contract_input_failure()

        current = self._quotes.current
        if not (current.is_success and current.key == intent.quote_key):
            await self._transition_to(OrderPhase.QUOTING)
        quote = await self._quotes.get_quote(intent)
        if self._superseded(generation):
            return
        if quote.is_error:
            self._invalidate_validation()
            self._config = self._build_config(intent, quote, self._gate.requirement)
            failure = QuoteFailed(f"Failed to get quote: {quote.error_detail}").to_failure()
            await self._transition_to(OrderPhase.QUOTE_FAILED, "quote failed", failure)
            return
        if not quote.is_success:
            return

        requirement = await self._gate.evaluate(
            asset=intent.src_asset,
            owner=self._wallet.address,
            spender=self._spender,
            required_amount=quote.deposit_amount,
            chain_id=intent.src_chain_id,
        )
        if self._superseded(generation):
            return

        config = self._build_config(intent, quote, requirement)
        self._config = config

        if requirement.state == ApprovalState.INSUFFICIENT:
            self._invalidate_validation()
            await self._transition_to(OrderPhase.APPROVAL_REQUIRED, "allowance below deposit", requirement.error)
            return
        if requirement.state in (ApprovalState.APPROVING, ApprovalState.CHECKING):
            self._invalidate_validation()
            await self._transition_to(OrderPhase.APPROVING, "approval in progress")
            return

        if not config.validate_enabled:
            self._invalidate_validation()
            failure = contract_failure or self._blocking_failure(config, requirement)
            await self._transition_to(OrderPhase.AWAITING_INPUT, "order not yet submittable", failure)
            return

        await self._validate(config, requirement, generation)

    async def _validate(self, config: OrderConfig, requirement: ApprovalRequirement, generation: int) -> None:
        validation_key = (config.fingerprint(), requirement.state)
        if validation_key == self._validated_key and self._validation is not None:
            await self._apply_validation(self._validation)
            return

        validation_generation = self._validation_generation.next()
        self._validated_key = None
        self._validation = OrderValidation(status=ValidationStatus.PENDING)
        await self._transition_to(OrderPhase.VALIDATING)
        try:
            validation = await self._orders.validate(config)
        except Exception as exc:
            if not self._validation_generation.is_current(validation_generation):
                return
            if self._superseded(generation):
                return
            self._validation = None
            failure = UnknownError(
                f"Could not validate order: {exc}",
                suggested_action="Refresh to validate the order again",
            ).to_failure()
            await self._transition_to(OrderPhase.AWAITING_INPUT, "validation unavailable", failure)
            return

        if not self._validation_generation.is_current(validation_generation):
            self.logger.debug(f"Order {self.attempt_id}: discarding superseded validation")
            return
        if self._superseded(generation):
            return

        self._validation = validation
        self._validated_key = validation_key
        await self._apply_validation(validation)

    async def _apply_validation(self, validation: OrderValidation) -> None:
        if validation.status == ValidationStatus.ACCEPTED:
            await self._transition_to(OrderPhase.READY, "validation accepted")
        elif validation.status == ValidationStatus.REJECTED:
            reason = validation.reject_reason or "rejected"
            description = validation.reject_description or "The solver will not fill this order"
            failure = ValidationRejected(
                f"Order rejected: {reason}: {description}",
                details={"rejectReason": validation.reject_reason, "rejectDescription": validation.reject_description},
            ).to_failure()
            await self._transition_to(OrderPhase.VALIDATION_REJECTED, "validation rejected", failure)
        else:
            await self._transition_to(OrderPhase.VALIDATING)

    def _clear_derived(self) -> None:
        self._quotes.disable()
        self._gate.reset()
        self._invalidate_validation()
        self._config = None

    def _invalidate_validation(self) -> None:
        self._validation_generation.invalidate()
        self._validation = None
        self._validated_key = None

    def _contract_input_failure(self) -> Optional[OrderFailure]:
        if self._contract_address and not is_valid_address(self._contract_address):
            return InvalidAddress(self._contract_address, "contract address").to_failure()
        return self._function_failure

    def _blocking_failure(self, config: OrderConfig, requirement: ApprovalRequirement) -> OrderFailure:
        if not self._wallet.address:
            return UnknownError(
                "Wallet not connected",
                suggested_action="Connect your wallet to execute orders",
            ).to_failure()
        if config.has_incomplete_calls:
            issues = [issue for call in config.calls for issue in call.issues]
            return InputInvalid(
                "Contract call has missing or invalid arguments",
                details={"issues": issues},
            ).to_failure()
        if requirement.state == ApprovalState.UNKNOWN:
            return UnknownError(
                "Token spender is not known yet",
                suggested_action="Wait for the protocol contracts to load, then refresh",
            ).to_failure()
        return InputInvalid("Order inputs are incomplete").to_failure()

    def _build_config(
        self,
        intent: OrderIntent,
        quote: Quote,
        requirement: ApprovalRequirement,
    ) -> OrderConfig:
        return build_order_config(
            intent,
            quote,
            requirement.state,
            owner=self._wallet.address,
            contract_address=self._contract_address,
            function=self._function,
            raw_inputs=self._function_inputs,
            blocked=self._contract_input_failure() is not None,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Approval
    # ─────────────────────────────────────────────────────────────────────────

    async def approve(self) -> OrderSnapshot:
        """Run the approval sub-flow for the current deposit token."""

        if self._phase != OrderPhase.APPROVAL_REQUIRED:
            return self.snapshot
        await self._transition_to(OrderPhase.APPROVING, "approval requested")
        await self._gate.approve()
        return await self.refresh()

    async def on_approval_observed(self) -> OrderSnapshot:
        """An Approval event was seen on-chain for the deposit token."""

        if self.is_committed or self.is_terminal:
            return self.snapshot
        await self._gate.on_approval_observed()
        return await self.refresh()

    # ─────────────────────────────────────────────────────────────────────────
    # Wallet
    # ─────────────────────────────────────────────────────────────────────────

    async def handle_wallet_change(self) -> OrderSnapshot:
        """React to the wallet connecting, changing account or changing chain."""

        if self.is_committed or self.is_terminal:
            return self.snapshot
        if self._wallet.address != self._last_owner:
            return await self.refresh()
        if self._phase == OrderPhase.AWAITING_NETWORK_SWITCH and self._config is not None:
            if self._guard.check(self._config.src_chain_id).matches:
                self._execution = OrderExecution()
                await self._transition_to(OrderPhase.READY, "wallet switched network")
        return self.snapshot

    # ─────────────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────────────

    async def execute(self) -> OrderSnapshot:
        """Submit the order, or request a network switch if the wallet is elsewhere.

        After a switch request the caller must call ``execute()`` again once
        the wallet is on the source chain.
        """

        if self._phase not in (OrderPhase.READY, OrderPhase.AWAITING_NETWORK_SWITCH):
            return self.snapshot
        config = self._config
        if (
            config is None
            or not config.validate_enabled
            or config.has_incomplete_calls
            or self._validation is None
            or not self._validation.is_accepted
        ):
            return self.snapshot
        if not self._wallet.address:
            return self.snapshot
        if self._evaluations_in_flight:
            self.logger.info(f"Order {self.attempt_id}: execute ignored, evaluation in flight")
            return self.snapshot
        if self._wallet.address != self._last_owner:
            # Payout and allowance were derived for another account
            return await self.refresh()

        try:
            proceed = await self._guard.ensure(config.src_chain_id)
        except NetworkMismatch as exc:
            self._execution = OrderExecution()
            if self._config is config:
                await self._transition_to(OrderPhase.READY, "network switch failed", exc.to_failure())
            return self.snapshot

        if (
            self._config is not config
            or self._phase not in (OrderPhase.READY, OrderPhase.AWAITING_NETWORK_SWITCH)
            or self._evaluations_in_flight
            or self._wallet.address != self._last_owner
        ):
            # Inputs or account changed while the switch was pending
            return self.snapshot

        if not proceed:
            self._execution = OrderExecution(status=ExecutionStatus.AWAITING_NETWORK_SWITCH)
            await self._transition_to(OrderPhase.AWAITING_NETWORK_SWITCH, "network switch requested")
            return self.snapshot

        return await self._submit(config)

    async def _submit(self, config: OrderConfig) -> OrderSnapshot:
        self._evaluation.invalidate()
        self._execution = OrderExecution(status=ExecutionStatus.SUBMITTING)
        await self._transition_to(OrderPhase.SUBMITTING, "submitting order")
        try:
            tx_hash = await self._orders.submit(config)
        except Exception as exc:
            if is_user_rejection(exc):
                error: OrderError = SubmissionRejected("Order was cancelled in the wallet")
            else:
                error = SubmissionFailed(f"Failed to open order: {exc}")
            failure = error.to_failure()
            self._execution = OrderExecution(status=ExecutionStatus.ERROR, failure=failure)
            await self._transition_to(OrderPhase.ERROR, "submission failed", failure)
            return self.snapshot

        self._execution = OrderExecution(
            status=ExecutionStatus.OPEN,
            tx_hash=tx_hash,
            explorer_url=self._explorer_url(config.src_chain_id, tx_hash),
        )
        await self._transition_to(OrderPhase.OPEN, "order opened")
        self._status_task = asyncio.create_task(self._follow_status(tx_hash))
        return self.snapshot

    def _explorer_url(self, chain_id: int, tx_hash: Optional[str]) -> Optional[str]:
        if self._catalog is None:
            return None
        return self._catalog.explorer_tx_url(chain_id, tx_hash)

    async def _follow_status(self, tx_hash: str) -> None:
        try:
            async for status in self._orders.watch(tx_hash):
                await self.handle_status_update(status, tx_hash)
                if self._phase != OrderPhase.OPEN:
                    break
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._phase == OrderPhase.OPEN and self._execution.tx_hash == tx_hash:
                failure = UnknownError(f"Lost track of order status: {exc}").to_failure()
                self._execution = OrderExecution(
                    status=ExecutionStatus.ERROR,
                    tx_hash=tx_hash,
                    explorer_url=self._execution.explorer_url,
                    failure=failure,
                )
                await self._transition_to(OrderPhase.ERROR, "status stream failed", failure)

    async def handle_status_update(self, status: str, tx_hash: Optional[str] = None) -> OrderSnapshot:
        """Apply a status reported by the order service for the open order."""

        if self._phase != OrderPhase.OPEN:
            return self.snapshot
        if tx_hash is not None and tx_hash != self._execution.tx_hash:
            return self.snapshot

        normalized = (status or "").strip().lower()
        if normalized == "open":
            return self.snapshot
        target = _STATUS_TO_PHASE.get(normalized)
        if target is None:
            self.logger.debug(f"Order {self.attempt_id}: ignoring status {status!r}")
            return self.snapshot

        failure: Optional[OrderFailure] = None
        if target == OrderPhase.REJECTED:
            failure = ValidationRejected("Order was rejected by the solver").to_failure()
        elif target == OrderPhase.ERROR:
            failure = UnknownError("Order service reported an error for this order").to_failure()

        self._execution = OrderExecution(
            status=ExecutionStatus(target.value),
            tx_hash=self._execution.tx_hash,
            explorer_url=self._execution.explorer_url,
            failure=failure,
        )
        await self._transition_to(target, f"order {normalized}", failure)
        return self.snapshot

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    async def reset(self) -> OrderSnapshot:
        """Re-arm for a fresh attempt after a terminal outcome or an abandoned open order."""

        if self._phase == OrderPhase.SUBMITTING:
            return self.snapshot
        await self._rearm()
        if self._pending_intent is not None:
            self._intent = self._pending_intent
            self._pending_intent = None
        return await self.refresh()

    async def _rearm(self) -> None:
        self._stop_following()
        self._clear_derived()
        self._execution = OrderExecution()
        self.attempt_id = str(uuid4())
        await self._transition_to(OrderPhase.IDLE, "re-armed for a new attempt")

    def _stop_following(self) -> None:
        if self._status_task is not None and not self._status_task.done():
            self._status_task.cancel()
        self._status_task = None

    async def close(self) -> None:
        self._stop_following()
