"""
Approval Gate

Decides whether the deposit-collecting contract needs an ERC-20 allowance
before an order can be opened, and drives the approve sub-flow.

    unknown -> {not_applicable | checking} -> {sufficient | insufficient}
    insufficient -> approving -> checking -> {sufficient | insufficient}

Every change of (token, owner, spender, required amount) resets the gate;
verdicts are never carried across intent changes.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Optional, Tuple

from ...services.address import is_zero_address
from .errors import ApprovalFailed, ApprovalRejected, is_user_rejection
from .generation import RequestGeneration
from .models import ApprovalRequirement, ApprovalState, Asset

GateKey = Tuple[Any, Optional[str], Optional[str], int, Optional[int]]


class ApprovalGate:
    """Tracks allowance sufficiency for one order attempt."""

    def __init__(self, wallet: Any, *, logger: Optional[logging.Logger] = None) -> None:
        self._wallet = wallet
        self._logger = logger or logging.getLogger(__name__)
        self._generation = RequestGeneration("allowance")
        self._key: Optional[GateKey] = None
        self._requirement = ApprovalRequirement()
        self._inflight_check: Optional["asyncio.Task[ApprovalRequirement]"] = None

    @property
    def requirement(self) -> ApprovalRequirement:
        return self._requirement

    @property
    def state(self) -> ApprovalState:
        return self._requirement.state

    def reset(self) -> None:
        self._generation.invalidate()
        self._key = None
        self._requirement = ApprovalRequirement()
        self._inflight_check = None

    def _set(self, **changes: Any) -> ApprovalRequirement:
        previous = self._requirement.state
        self._requirement = dataclasses.replace(self._requirement, **changes)
        if self._requirement.state != previous:
            self._logger.debug(
                f"Approval {previous.value} -> {self._requirement.state.value} "
                f"(token={self._requirement.token}, spender={self._requirement.spender})"
            )
        return self._requirement

    async def evaluate(
        self,
        *,
        asset: Optional[Asset],
        owner: Optional[str],
        spender: Optional[str],
        required_amount: int,
        chain_id: Optional[int],
    ) -> ApprovalRequirement:
        """Re-evaluate for the given inputs, reading the allowance when applicable."""

        key: GateKey = (
            asset.key if asset else None,
            owner.lower() if owner else None,
            spender.lower() if spender else None,
            int(required_amount),
            chain_id,
        )
        if key != self._key:
            self.reset()
            self._key = key
            self._requirement = ApprovalRequirement(
                token=asset.address if asset else None,
                owner=owner,
                spender=spender,
                required_amount=int(required_amount),
                chain_id=chain_id,
            )
        elif self.state == ApprovalState.CHECKING and self._inflight_check is not None:
            return await self._inflight_check
        elif self.state != ApprovalState.UNKNOWN:
            # Same inputs keep their verdict; use refresh() to re-read
            return self._requirement

        if asset is None:
            return self._set(state=ApprovalState.UNKNOWN)
        if asset.is_native:
            return self._set(state=ApprovalState.NOT_APPLICABLE)
        if required_amount <= 0 or not owner or not spender or is_zero_address(spender):
            # Cannot decide yet; keeps the order blocked until inputs are complete
            return self._set(state=ApprovalState.UNKNOWN)

        return await self._check()

    async def refresh(self) -> ApprovalRequirement:
        """Re-read the allowance for the current inputs."""

        if self._key is None or self.state in (ApprovalState.UNKNOWN, ApprovalState.NOT_APPLICABLE):
            return self._requirement
        return await self._check()

    async def on_approval_observed(self) -> ApprovalRequirement:
        """An Approval event (or confirmation) was seen for this token."""
        return await self.refresh()

    async def _check(self) -> ApprovalRequirement:
        req = self._set(state=ApprovalState.CHECKING, error=None)
        generation = self._generation.next()
        task = asyncio.ensure_future(self._read_allowance(req, generation))
        self._inflight_check = task
        try:
            requirement = await task
        finally:
            if self._inflight_check is task:
                self._inflight_check = None
        if self._inflight_check is not None:
            # A newer read of the same inputs is running; its verdict wins
            return await self._inflight_check
        return requirement

    async def _read_allowance(self, req: ApprovalRequirement, generation: int) -> ApprovalRequirement:
        try:
            allowance = await self._wallet.get_allowance(req.token, req.owner, req.spender, req.chain_id)
        except Exception as exc:
            if not self._generation.is_current(generation):
                return self._requirement
            self._logger.warning(f"Allowance read failed for {req.token}: {exc}")
            failure = ApprovalFailed(f"Could not read token allowance: {exc}").to_failure()
            return self._set(state=ApprovalState.INSUFFICIENT, current_allowance=None, error=failure)

        if not self._generation.is_current(generation):
            self._logger.debug(f"Discarding superseded allowance read for {req.token}")
            return self._requirement

        allowance = int(allowance)
        state = ApprovalState.SUFFICIENT if allowance >= req.required_amount else ApprovalState.INSUFFICIENT
        return self._set(state=state, current_allowance=allowance)

    async def approve(self) -> ApprovalRequirement:
        """Ask the wallet to approve exactly the required amount.

        Only valid from ``insufficient``. User rejection or wallet failure
        returns to ``insufficient`` with the error attached; nothing retries.
        """

        if self.state != ApprovalState.INSUFFICIENT:
            return self._requirement

        key = self._key
        req = self._set(state=ApprovalState.APPROVING, error=None, tx_hash=None)
        self._logger.info(
            f"Requesting approval of {req.required_amount} for spender {req.spender} on token {req.token}"
        )
        try:
            tx_hash = await self._wallet.approve(req.token, req.spender, req.required_amount, req.chain_id)
        except Exception as exc:
            if self._key != key or self.state != ApprovalState.APPROVING:
                return self._requirement
            if is_user_rejection(exc):
                error = ApprovalRejected("Approval was rejected in the wallet")
            else:
                error = ApprovalFailed(f"Approval failed: {exc}")
            self._logger.warning(f"Approval did not complete: {error.message}")
            return self._set(state=ApprovalState.INSUFFICIENT, error=error.to_failure())

        if self._key != key:
            return self._requirement
        self._set(tx_hash=tx_hash)
        if self.state == ApprovalState.SUFFICIENT:
            # An Approval event already settled the verdict
            return self._requirement
        return await self._check()
