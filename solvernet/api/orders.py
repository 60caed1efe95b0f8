from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..core.order.builder import build_order_config
from ..core.order.calls import CallBuilder
from ..core.order.errors import OrderError, UnknownChain
from ..core.order.models import ApprovalState, OrderIntent, Quote
from ..core.order.quote import QuoteController
from ..core.order.units import format_units
from ..providers.solver import SolverProvider
from ..services.address import is_valid_address
from .assets import get_catalog

router = APIRouter(prefix="/api/orders")


def get_solver() -> SolverProvider:
    return SolverProvider()


class OrderPreviewRequest(BaseModel):
    network: Optional[str] = Field(default=None, description="mainnet or testnet; defaults to the configured network")
    srcChainId: int = Field(..., description="Source chain ID")
    destChainId: int = Field(..., description="Destination chain ID")
    srcToken: Optional[str] = Field(default=None, description="Deposit token address; empty or zero-address for native")
    destToken: Optional[str] = Field(default=None, description="Expense token address; empty or zero-address for native")
    amount: str = Field("", description="Human-readable amount, e.g. '1.5'")
    wallet: Optional[str] = Field(default=None, description="Connected wallet; receives the payout")
    contractAddress: Optional[str] = Field(default=None, description="Target of the optional destination call")
    function: Optional[Union[str, Dict[str, Any]]] = Field(
        default=None,
        description="ABI fragment or text signature of the destination call",
    )
    inputs: Dict[str, str] = Field(default_factory=dict, description="Raw argument values by parameter name")
    quote: bool = Field(default=False, description="Price the order with the solver before building it")


@router.post("/preview")
async def preview_order(
    request: OrderPreviewRequest,
    solver: SolverProvider = Depends(get_solver),
) -> Dict[str, Any]:
    """Build the order config the form would submit for these inputs."""

    catalog = await get_catalog(request.network)
    try:
        src_asset = catalog.get_asset(request.srcChainId, request.srcToken)
        dest_asset = catalog.get_asset(request.destChainId, request.destToken)
    except UnknownChain as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    if src_asset is None:
        raise HTTPException(status_code=400, detail=f"Deposit token not supported on chain {request.srcChainId}")
    if dest_asset is None:
        raise HTTPException(status_code=400, detail=f"Expense token not supported on chain {request.destChainId}")
    if request.wallet and not is_valid_address(request.wallet):
        raise HTTPException(status_code=400, detail="Invalid wallet address")
    if request.contractAddress and not is_valid_address(request.contractAddress):
        raise HTTPException(status_code=400, detail="Invalid address format")

    function = None
    if request.function is not None:
        try:
            function = CallBuilder.resolve_function(request.function)
        except OrderError as exc:
            raise HTTPException(status_code=400, detail=exc.message)

    intent = OrderIntent(
        src_chain_id=request.srcChainId,
        dest_chain_id=request.destChainId,
        src_asset=src_asset,
        dest_asset=dest_asset,
        raw_amount=request.amount,
    )

    quote = Quote()
    if request.quote and QuoteController.is_quotable(intent):
        quote = await QuoteController(solver).get_quote(intent)

    # Allowances are only known to a connected wallet
    approval_state = ApprovalState.NOT_APPLICABLE if src_asset.is_native else ApprovalState.UNKNOWN

    config = build_order_config(
        intent,
        quote,
        approval_state,
        owner=request.wallet,
        contract_address=request.contractAddress,
        function=function,
        raw_inputs=request.inputs,
    )

    return {
        "config": config.to_dict(),
        "quote": quote.to_dict(),
        "approval": approval_state.value,
        "display": {
            "deposit": f"{format_units(config.deposit.amount, src_asset.decimals)} {src_asset.symbol}",
            "expense": f"{format_units(config.expense.amount, dest_asset.decimals)} {dest_asset.symbol}",
        },
        "issues": [issue for call in config.calls for issue in call.issues],
    }
