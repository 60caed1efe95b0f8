"""Shared fakes for order flow tests."""

from typing import Any, Dict, List, Optional

import pytest

from solvernet.core.order.catalog import AssetCatalog
from solvernet.core.order.models import OrderValidation, ValidationStatus
from solvernet.providers.base import OrderService, QuoteService, WalletConnector

WALLET = "0x1111111111111111111111111111111111111111"
INBOX = "0x2222222222222222222222222222222222222222"
CONTRACT = "0x3333333333333333333333333333333333333333"
TX_HASH = "0x" + "ab" * 32

BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
ARB_USDC = "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"


class UserRejectedError(Exception):
    """Mimics an EIP-1193 user rejection."""

    code = 4001


class FakeWallet(WalletConnector):
    """In-memory wallet; approving raises the allowance to the approved amount."""

    def __init__(self, address: Optional[str] = WALLET, chain_id: int = 8453, allowance: int = 0):
        self._address = address
        self._chain_id = chain_id
        self.allowance = allowance
        self.allowance_reads = 0
        self.switch_requests: List[int] = []
        self.switch_error: Optional[Exception] = None
        self.approvals: List[Dict[str, Any]] = []
        self.approve_error: Optional[Exception] = None

    @property
    def address(self) -> Optional[str]:
        return self._address

    @property
    def chain_id(self) -> Optional[int]:
        return self._chain_id

    def connect(self, address: str) -> None:
        self._address = address

    def disconnect(self) -> None:
        self._address = None

    def move_to(self, chain_id: int) -> None:
        self._chain_id = chain_id

    async def switch_network(self, chain_id: int) -> None:
        self.switch_requests.append(chain_id)
        if self.switch_error is not None:
            raise self.switch_error

    async def get_allowance(self, token: str, owner: str, spender: str, chain_id: int) -> int:
        self.allowance_reads += 1
        return self.allowance

    async def approve(self, token: str, spender: str, amount: int, chain_id: int) -> str:
        self.approvals.append({"token": token, "spender": spender, "amount": amount, "chain_id": chain_id})
        if self.approve_error is not None:
            raise self.approve_error
        self.allowance = amount
        return "0x" + "0a" * 32

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        return TX_HASH


class FakeQuoteService(QuoteService):
    """Quotes the expense at 99% of the deposit."""

    def __init__(self) -> None:
        self.requests: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    async def quote(self, request: Dict[str, Any]) -> Dict[str, Any]:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        deposit = int(request["deposit"]["amount"])
        return {
            "deposit": {"token": request["deposit"]["token"], "amount": str(deposit)},
            "expense": {"token": request["expense"]["token"], "amount": str(deposit * 99 // 100)},
        }


class FakeOrderService(OrderService):
    def __init__(self) -> None:
        self.validation = OrderValidation(status=ValidationStatus.ACCEPTED)
        self.validated: List[Any] = []
        self.submitted: List[Any] = []
        self.submit_error: Optional[Exception] = None
        self.statuses: List[str] = []

    async def validate(self, config):
        self.validated.append(config)
        return self.validation

    async def submit(self, config) -> str:
        self.submitted.append(config)
        if self.submit_error is not None:
            raise self.submit_error
        return TX_HASH

    async def watch(self, tx_hash: str):
        for status in self.statuses:
            yield status


@pytest.fixture
def catalog() -> AssetCatalog:
    return AssetCatalog("mainnet")


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def quote_service() -> FakeQuoteService:
    return FakeQuoteService()


@pytest.fixture
def order_service() -> FakeOrderService:
    return FakeOrderService()
