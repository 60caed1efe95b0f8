from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from ..core.order.models import OrderConfig, OrderValidation


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class QuoteService(ABC):
    """Prices an order: given a deposit, how much expense it buys (or vice versa)."""

    @abstractmethod
    async def quote(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Return ``{"deposit": {"amount": ...}, "expense": {"amount": ...}}``"""
        pass


class OrderService(ABC):
    """Validates, opens and reports on solver orders."""

    @abstractmethod
    async def validate(self, config: "OrderConfig") -> "OrderValidation":
        """Ask the solver whether it would fill this order"""
        pass

    @abstractmethod
    async def submit(self, config: "OrderConfig") -> str:
        """Open the order on the source chain and return the transaction hash"""
        pass

    @abstractmethod
    def watch(self, tx_hash: str) -> AsyncIterator[str]:
        """Yield order statuses (``open``, ``filled``, ``rejected``) as they change"""
        pass


class AbiLookupService(ABC):
    """Supplies verified contract ABIs"""

    @abstractmethod
    async def get_abi(self, address: str, chain_id: int) -> List[Dict[str, Any]]:
        pass


class WalletConnector(ABC):
    """The user's connected wallet."""

    @property
    @abstractmethod
    def address(self) -> Optional[str]:
        """Connected account, or None when disconnected"""
        pass

    @property
    @abstractmethod
    def chain_id(self) -> Optional[int]:
        """Chain the wallet is currently on"""
        pass

    @abstractmethod
    async def switch_network(self, chain_id: int) -> None:
        """Ask the user to switch chains; raises if they decline"""
        pass

    @abstractmethod
    async def get_allowance(self, token: str, owner: str, spender: str, chain_id: int) -> int:
        """Read ``allowance(owner, spender)`` on ``token``"""
        pass

    @abstractmethod
    async def approve(self, token: str, spender: str, amount: int, chain_id: int) -> str:
        """Send ``approve(spender, amount)`` and return once confirmed"""
        pass

    @abstractmethod
    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Sign and broadcast a transaction, returning its hash"""
        pass
