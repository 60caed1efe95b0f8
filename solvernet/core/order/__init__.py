"""Order construction and execution components."""

from typing import TYPE_CHECKING

from .catalog import AssetCatalog
from .errors import ErrorCategory, OrderError, OrderFailure
from .models import (
    ApprovalState,
    Asset,
    OrderConfig,
    OrderIntent,
    OrderPhase,
    OrderSnapshot,
    Quote,
    QuoteStatus,
)

if TYPE_CHECKING:  # pragma: no cover
    from .orchestrator import OrderOrchestrator

__all__ = [
    "ApprovalState",
    "Asset",
    "AssetCatalog",
    "ErrorCategory",
    "OrderConfig",
    "OrderError",
    "OrderFailure",
    "OrderIntent",
    "OrderOrchestrator",
    "OrderPhase",
    "OrderSnapshot",
    "Quote",
    "QuoteStatus",
]


def __getattr__(name: str):  # pragma: no cover - simple thunk
    if name == "OrderOrchestrator":
        from .orchestrator import OrderOrchestrator as _OrderOrchestrator

        return _OrderOrchestrator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
