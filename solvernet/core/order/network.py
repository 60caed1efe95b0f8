"""Checks that the wallet is on the chain a step needs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .errors import NetworkMismatch, is_user_rejection


@dataclass(frozen=True)
class NetworkCheck:
    required_chain_id: int
    active_chain_id: Optional[int]

    @property
    def matches(self) -> bool:
        return self.active_chain_id == self.required_chain_id


class NetworkGuard:
    """Compares the wallet's active chain with the chain required by a step.

    Switching is asynchronous and user-confirmable, so ``ensure`` never lets
    the caller proceed in the same call that requested a switch.
    """

    def __init__(self, wallet: Any, *, logger: Optional[logging.Logger] = None) -> None:
        self._wallet = wallet
        self._logger = logger or logging.getLogger(__name__)

    def check(self, required_chain_id: int) -> NetworkCheck:
        return NetworkCheck(required_chain_id=required_chain_id, active_chain_id=self._wallet.chain_id)

    async def ensure(self, required_chain_id: int) -> bool:
        """Return True if the step may proceed now.

        On mismatch a switch is requested and False is returned; the caller
        must re-trigger the step once the wallet reports the new chain.

        Raises:
            NetworkMismatch: the user declined or the wallet could not switch
        """

        result = self.check(required_chain_id)
        if result.matches:
            return True

        self._logger.info(f"Switching wallet from chain {result.active_chain_id} to {required_chain_id}")
        try:
            await self._wallet.switch_network(required_chain_id)
        except Exception as exc:
            if is_user_rejection(exc):
                raise NetworkMismatch(
                    f"Network switch to chain {required_chain_id} was rejected in the wallet",
                    details={"required": required_chain_id, "active": result.active_chain_id},
                ) from exc
            raise NetworkMismatch(
                f"Could not switch to chain {required_chain_id}: {exc}",
                details={"required": required_chain_id, "active": result.active_chain_id},
            ) from exc
        return False


__all__ = ["NetworkCheck", "NetworkGuard"]
