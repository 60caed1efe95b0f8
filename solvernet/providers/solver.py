"""Async client for the solver's public order API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.order.models import OrderValidation, ValidationStatus
from .base import Provider, QuoteService

if TYPE_CHECKING:  # pragma: no cover
    from ..core.order.models import OrderConfig


def build_check_payload(config: "OrderConfig") -> Dict[str, Any]:
    """Shape an ``OrderConfig`` the way ``/check`` expects it."""

    data = config.to_dict()
    return {
        "srcChainId": data["srcChainId"],
        "destChainId": data["destChainId"],
        "deposit": data["deposit"],
        "expenses": [data["expense"]],
        "calls": data["calls"],
    }


def parse_check_response(payload: Dict[str, Any]) -> OrderValidation:
    if payload.get("rejected") or payload.get("rejectReason"):
        return OrderValidation(
            status=ValidationStatus.REJECTED,
            reject_reason=payload.get("rejectReason") or "rejected",
            reject_description=payload.get("rejectDescription"),
        )
    if payload.get("accepted"):
        return OrderValidation(status=ValidationStatus.ACCEPTED)
    return OrderValidation(status=ValidationStatus.PENDING)


class SolverProvider(Provider, QuoteService):
    """Thin wrapper around the solver's ``/tokens``, ``/quote`` and ``/check`` endpoints."""

    name = "solver"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[int] = None,
    ) -> None:
        self.base_url = (base_url or settings.resolved_solver_url).rstrip("/")
        self.timeout_s = timeout_s or settings.request_timeout_seconds

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": "SolvernetClient/1.0",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout_s) as client:
            response = await client.request(method, path, json=json, headers=self._headers(), **kwargs)
            response.raise_for_status()
            return response

    async def ready(self) -> bool:
        try:
            await self.get_tokens()
            return True
        except (httpx.HTTPError, ValueError):
            return False

    async def health_check(self) -> Dict[str, Any]:
        healthy = await self.ready()
        return {
            "status": "healthy" if healthy else "unavailable",
            "base_url": self.base_url,
        }

    async def get_tokens(self) -> List[Dict[str, Any]]:
        """Fetch the solver's supported token list."""

        resp = await self._request("GET", "/tokens")
        payload = resp.json()
        tokens = payload.get("tokens") if isinstance(payload, dict) else None
        if not isinstance(tokens, list):
            raise ValueError("Solver token list response has no 'tokens' array")
        return tokens

    async def quote(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Request a deposit/expense quote.

        ``request`` carries ``srcChainId``, ``destChainId``, ``deposit``,
        ``expense`` and ``mode``; exactly one side carries an amount.
        """

        resp = await self._request("POST", "/quote", json=request)
        return resp.json()

    async def check(self, config: "OrderConfig") -> OrderValidation:
        """Ask the solver whether it would fill ``config`` as specified."""

        resp = await self._request("POST", "/check", json=build_check_payload(config))
        return parse_check_response(resp.json())
