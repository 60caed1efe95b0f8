from typing import Any, Dict

from fastapi import APIRouter

from ..config import settings
from ..providers.explorer import ExplorerProvider
from ..providers.solver import SolverProvider

router = APIRouter()


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint that verifies provider status"""

    solver = SolverProvider()
    explorer = ExplorerProvider()

    provider_status = {
        "solver": await solver.health_check(),
        "explorer": await explorer.health_check(),
    }
    available_providers = sum(
        1 for status in provider_status.values()
        if status["status"] == "healthy"
    )

    return {
        "status": "healthy" if available_providers == len(provider_status) else "degraded",
        "network": settings.network,
        "providers": provider_status,
        "available_providers": available_providers,
        "total_providers": len(provider_status),
    }
