"""
Order Models

Typed records shared by the catalog, quote, call, approval and orchestration
components. Derived records (quotes, configs, snapshots) are rebuilt rather
than mutated.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from .constants import READ_ONLY_MUTABILITIES
from .errors import InvalidArgument, OrderFailure


# =============================================================================
# Assets and intent
# =============================================================================

NATIVE_MARKER = "native"


@dataclass(frozen=True)
class Asset:
    """A token (or the native currency) available on a chain."""

    chain_id: int
    symbol: str
    name: str
    decimals: int
    address: Optional[str] = None
    is_native: bool = False
    min_amount: str = "0"
    max_amount: str = "0"

    @property
    def key(self) -> Tuple[int, str]:
        return (self.chain_id, self.address.lower() if self.address else NATIVE_MARKER)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "isNative": self.is_native,
            "minAmount": self.min_amount,
            "maxAmount": self.max_amount,
        }


QuoteKey = Tuple[int, int, Tuple[int, str], Tuple[int, str], str]


@dataclass(frozen=True)
class OrderIntent:
    """What the user asked for. Replaced wholesale on every selector change."""

    src_chain_id: int
    dest_chain_id: int
    src_asset: Optional[Asset] = None
    dest_asset: Optional[Asset] = None
    raw_amount: str = ""

    @property
    def quote_key(self) -> Optional[QuoteKey]:
        if self.src_asset is None or self.dest_asset is None:
            return None
        return (
            self.src_chain_id,
            self.dest_chain_id,
            self.src_asset.key,
            self.dest_asset.key,
            self.raw_amount.strip(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "srcChainId": self.src_chain_id,
            "destChainId": self.dest_chain_id,
            "srcAsset": self.src_asset.to_dict() if self.src_asset else None,
            "destAsset": self.dest_asset.to_dict() if self.dest_asset else None,
            "amount": self.raw_amount,
        }


# =============================================================================
# Quotes
# =============================================================================

class QuoteStatus(str, Enum):
    DISABLED = "disabled"   # Neutral: inputs not quotable
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Quote:
    status: QuoteStatus = QuoteStatus.DISABLED
    deposit_amount: int = 0
    expense_amount: int = 0
    error_detail: Optional[str] = None
    key: Optional[QuoteKey] = None
    generation: int = 0

    @property
    def is_success(self) -> bool:
        return self.status == QuoteStatus.SUCCESS

    @property
    def is_pending(self) -> bool:
        return self.status == QuoteStatus.PENDING

    @property
    def is_error(self) -> bool:
        return self.status == QuoteStatus.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "depositAmount": str(self.deposit_amount),
            "expenseAmount": str(self.expense_amount),
            "errorDetail": self.error_detail,
        }


# =============================================================================
# Contract functions and calls
# =============================================================================

_SIGNATURE_RE = re.compile(r"^\s*([A-Za-z_$][A-Za-z0-9_$]*)\s*\((.*)\)\s*$")


@dataclass(frozen=True)
class AbiParam:
    name: str
    type: str
    internal_type: Optional[str] = None

    def to_abi(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "type": self.type}
        if self.internal_type:
            data["internalType"] = self.internal_type
        return data


@dataclass(frozen=True)
class ContractFunction:
    """A single function entry from a verified contract ABI."""

    name: str
    inputs: Tuple[AbiParam, ...] = ()
    outputs: Tuple[AbiParam, ...] = ()
    state_mutability: str = "nonpayable"
    type: str = "function"

    @property
    def is_write(self) -> bool:
        return self.type == "function" and self.state_mutability not in READ_ONLY_MUTABILITIES

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(param.type for param in self.inputs)})"

    @classmethod
    def from_abi(cls, entry: Dict[str, Any]) -> "ContractFunction":
        def _params(items: Optional[List[Dict[str, Any]]]) -> Tuple[AbiParam, ...]:
            params = []
            for index, item in enumerate(items or []):
                params.append(
                    AbiParam(
                        name=item.get("name") or f"arg{index}",
                        type=item.get("type", ""),
                        internal_type=item.get("internalType"),
                    )
                )
            return tuple(params)

        return cls(
            name=entry.get("name", ""),
            inputs=_params(entry.get("inputs")),
            outputs=_params(entry.get("outputs")),
            state_mutability=entry.get("stateMutability", "nonpayable"),
            type=entry.get("type", "function"),
        )

    @classmethod
    def from_signature(cls, signature: str, state_mutability: str = "nonpayable") -> "ContractFunction":
        """Parse ``"name(type [name], ...)"``; unnamed parameters become ``argN``."""

        match = _SIGNATURE_RE.match(signature or "")
        if not match:
            raise InvalidArgument("function", "signature", signature, "not a function signature")
        name, body = match.group(1), match.group(2).strip()
        params: List[AbiParam] = []
        if body:
            for index, part in enumerate(body.split(",")):
                tokens = part.split()
                if not tokens:
                    raise InvalidArgument(f"arg{index}", "signature", signature, "empty parameter")
                params.append(AbiParam(name=tokens[1] if len(tokens) > 1 else f"arg{index}", type=tokens[0]))
        return cls(name=name, inputs=tuple(params), state_mutability=state_mutability)

    def to_abi(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "inputs": [param.to_abi() for param in self.inputs],
            "outputs": [param.to_abi() for param in self.outputs],
            "stateMutability": self.state_mutability,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


@dataclass(frozen=True)
class CallSpec:
    """One destination-side call executed as part of order fulfillment."""

    target: str
    value: int = 0
    function_name: Optional[str] = None
    abi: Optional[Tuple[Dict[str, Any], ...]] = None
    args: Tuple[Any, ...] = ()
    incomplete: bool = False
    issues: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"target": self.target, "value": str(self.value)}
        if self.function_name:
            data["functionName"] = self.function_name
            data["args"] = [_jsonable(arg) for arg in self.args]
            data["abi"] = list(self.abi or ())
        if self.incomplete:
            data["incomplete"] = True
            data["issues"] = list(self.issues)
        return data


# =============================================================================
# Approval
# =============================================================================

class ApprovalState(str, Enum):
    UNKNOWN = "unknown"
    NOT_APPLICABLE = "not_applicable"
    CHECKING = "checking"
    SUFFICIENT = "sufficient"
    INSUFFICIENT = "insufficient"
    APPROVING = "approving"


@dataclass(frozen=True)
class ApprovalRequirement:
    state: ApprovalState = ApprovalState.UNKNOWN
    token: Optional[str] = None
    owner: Optional[str] = None
    spender: Optional[str] = None
    required_amount: int = 0
    current_allowance: Optional[int] = None
    chain_id: Optional[int] = None
    tx_hash: Optional[str] = None
    error: Optional[OrderFailure] = None

    @property
    def is_applicable(self) -> bool:
        return self.state != ApprovalState.NOT_APPLICABLE

    @property
    def is_sufficient(self) -> bool:
        return self.state == ApprovalState.SUFFICIENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "token": self.token,
            "owner": self.owner,
            "spender": self.spender,
            "requiredAmount": str(self.required_amount),
            "currentAllowance": str(self.current_allowance) if self.current_allowance is not None else None,
            "chainId": self.chain_id,
            "txHash": self.tx_hash,
            "error": self.error.to_dict() if self.error else None,
        }


# =============================================================================
# Order configuration, validation and execution
# =============================================================================

@dataclass(frozen=True)
class DepositSpec:
    amount: int
    token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"amount": str(self.amount)}
        if self.token:
            data["token"] = self.token
        return data


@dataclass(frozen=True)
class ExpenseSpec:
    amount: int
    token: Optional[str] = None
    spender: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"amount": str(self.amount)}
        if self.token:
            data["token"] = self.token
        if self.spender:
            data["spender"] = self.spender
        return data


@dataclass(frozen=True)
class OrderConfig:
    """Submittable order derived from quote, calls and approval state."""

    src_chain_id: int
    dest_chain_id: int
    deposit: DepositSpec
    expense: ExpenseSpec
    calls: Tuple[CallSpec, ...] = ()
    validate_enabled: bool = False

    @property
    def has_incomplete_calls(self) -> bool:
        return any(call.incomplete for call in self.calls)

    def fingerprint(self) -> str:
        """Stable digest of everything the order service sees."""

        payload = self.to_dict()
        payload.pop("validateEnabled", None)
        return json.dumps(payload, sort_keys=True, default=str)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "srcChainId": self.src_chain_id,
            "destChainId": self.dest_chain_id,
            "deposit": self.deposit.to_dict(),
            "expense": self.expense.to_dict(),
            "calls": [call.to_dict() for call in self.calls],
            "validateEnabled": self.validate_enabled,
        }


class ValidationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class OrderValidation:
    status: ValidationStatus = ValidationStatus.PENDING
    reject_reason: Optional[str] = None
    reject_description: Optional[str] = None

    @property
    def is_accepted(self) -> bool:
        return self.status == ValidationStatus.ACCEPTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "rejectReason": self.reject_reason,
            "rejectDescription": self.reject_description,
        }


class ExecutionStatus(str, Enum):
    IDLE = "idle"
    AWAITING_NETWORK_SWITCH = "awaiting_network_switch"
    SUBMITTING = "submitting"
    OPEN = "open"
    FILLED = "filled"
    REJECTED = "rejected"
    ERROR = "error"


TERMINAL_EXECUTION_STATUSES = frozenset(
    {ExecutionStatus.FILLED, ExecutionStatus.REJECTED, ExecutionStatus.ERROR}
)


@dataclass(frozen=True)
class OrderExecution:
    status: ExecutionStatus = ExecutionStatus.IDLE
    tx_hash: Optional[str] = None
    explorer_url: Optional[str] = None
    failure: Optional[OrderFailure] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_EXECUTION_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "txHash": self.tx_hash,
            "explorerUrl": self.explorer_url,
            "failure": self.failure.to_dict() if self.failure else None,
        }


# =============================================================================
# Orchestrator phases
# =============================================================================

class OrderPhase(str, Enum):
    """Where an order attempt currently stands."""

    IDLE = "idle"                                 # Nothing quotable yet
    QUOTING = "quoting"
    QUOTE_FAILED = "quote_failed"                 # Change input to retry
    AWAITING_INPUT = "awaiting_input"             # Wallet or call arguments missing
    APPROVAL_REQUIRED = "approval_required"
    APPROVING = "approving"
    VALIDATING = "validating"
    VALIDATION_REJECTED = "validation_rejected"   # Terminal for this attempt
    READY = "ready"
    AWAITING_NETWORK_SWITCH = "awaiting_network_switch"
    SUBMITTING = "submitting"
    OPEN = "open"
    FILLED = "filled"
    REJECTED = "rejected"
    ERROR = "error"


@dataclass
class PhaseTransition:
    """Record of an orchestrator phase change."""

    id: str = field(default_factory=lambda: str(uuid4()))
    from_phase: OrderPhase = OrderPhase.IDLE
    to_phase: OrderPhase = OrderPhase.IDLE
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reason: Optional[str] = None
    failure: Optional[OrderFailure] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "fromPhase": self.from_phase.value,
            "toPhase": self.to_phase.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "failure": self.failure.to_dict() if self.failure else None,
        }


@dataclass(frozen=True)
class OrderSnapshot:
    """Read-only view of orchestrator state handed to callers."""

    phase: OrderPhase
    intent: Optional[OrderIntent]
    quote: Quote
    approval: ApprovalRequirement
    config: Optional[OrderConfig]
    validation: Optional[OrderValidation]
    execution: OrderExecution
    failure: Optional[OrderFailure] = None

    @property
    def is_ready(self) -> bool:
        return self.phase == OrderPhase.READY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "intent": self.intent.to_dict() if self.intent else None,
            "quote": self.quote.to_dict(),
            "approval": self.approval.to_dict(),
            "config": self.config.to_dict() if self.config else None,
            "validation": self.validation.to_dict() if self.validation else None,
            "execution": self.execution.to_dict(),
            "failure": self.failure.to_dict() if self.failure else None,
        }
