"""Derives the submittable ``OrderConfig`` from intent, quote, calls and approval."""

from __future__ import annotations

from typing import Mapping, Optional

from ...services.address import is_valid_address
from .calls import CallBuilder
from .errors import InputInvalid
from .models import (
    ApprovalState,
    ContractFunction,
    DepositSpec,
    ExpenseSpec,
    OrderConfig,
    OrderIntent,
    Quote,
)
from .units import is_positive_amount, parse_units

APPROVAL_CLEARED = frozenset({ApprovalState.NOT_APPLICABLE, ApprovalState.SUFFICIENT})


def _fallback_amount(raw_amount: str, decimals: int) -> int:
    try:
        return parse_units(raw_amount or "0", decimals)
    except InputInvalid:
        return 0


def build_order_config(
    intent: OrderIntent,
    quote: Quote,
    approval_state: ApprovalState,
    *,
    owner: Optional[str],
    contract_address: Optional[str] = None,
    function: Optional[ContractFunction] = None,
    raw_inputs: Optional[Mapping[str, str]] = None,
    blocked: bool = False,
) -> OrderConfig:
    """Build the order for ``intent``; both assets must be selected.

    Quoted amounts are used once the quote succeeded; before that the user's
    amount is shown in each asset's units. ``blocked`` forces
    ``validate_enabled`` off for inputs the caller already knows are bad.
    """

    src, dest = intent.src_asset, intent.dest_asset
    if src is None or dest is None:
        raise InputInvalid("Select a source and destination asset")

    deposit_amount = quote.deposit_amount if quote.is_success else _fallback_amount(intent.raw_amount, src.decimals)
    expense_amount = quote.expense_amount if quote.is_success else _fallback_amount(intent.raw_amount, dest.decimals)

    contract = contract_address if contract_address and is_valid_address(contract_address) else None
    calls = CallBuilder.build_call_list(
        dest_asset=dest,
        recipient=owner,
        expense_amount=expense_amount,
        contract_address=contract,
        function=function,
        raw_inputs=raw_inputs,
    )

    deposit = DepositSpec(amount=deposit_amount, token=None if src.is_native else src.address)
    expense = ExpenseSpec(
        # No payout call exists without a wallet, so nothing native is spent
        amount=0 if dest.is_native and not owner else expense_amount,
        token=None if dest.is_native else dest.address,
        spender=contract if (contract and function is not None and not dest.is_native) else None,
    )

    validate_enabled = bool(
        owner
        and not blocked
        and is_positive_amount(intent.raw_amount)
        and quote.is_success
        and approval_state in APPROVAL_CLEARED
        and not any(call.incomplete for call in calls)
    )
    return OrderConfig(
        src_chain_id=intent.src_chain_id,
        dest_chain_id=intent.dest_chain_id,
        deposit=deposit,
        expense=expense,
        calls=tuple(calls),
        validate_enabled=validate_enabled,
    )
