"""Quote lifecycle: request, deduplicate, and drop superseded responses."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from ...services.address import is_valid_address
from .constants import QUOTE_MODE_DEPOSIT, QUOTE_MODE_EXPENSE, ZERO_ADDRESS
from .errors import QuoteFailed
from .generation import RequestGeneration
from .models import Asset, OrderIntent, Quote, QuoteKey, QuoteStatus
from .units import is_positive_amount, parse_units


def _token_field(asset: Asset) -> str:
    if asset.is_native or not asset.address or not is_valid_address(asset.address):
        return ZERO_ADDRESS
    return asset.address


def _parse_quoted_amount(section: Any, label: str) -> int:
    if isinstance(section, dict):
        value = section.get("amount")
    else:
        value = section
    if value is None:
        raise QuoteFailed(f"Quote response is missing the {label} amount")
    if isinstance(value, bool):
        raise QuoteFailed(f"Quote response has a malformed {label} amount: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    try:
        return int(text, 16) if text.lower().startswith("0x") else int(text)
    except ValueError:
        raise QuoteFailed(f"Quote response has a malformed {label} amount: {value!r}")


def _describe_failure(exc: Exception) -> str:
    if isinstance(exc, QuoteFailed):
        return exc.message
    if isinstance(exc, httpx.HTTPStatusError):
        body = exc.response.text or exc.response.reason_phrase
        return f"Quote service returned {exc.response.status_code}: {body}"
    if isinstance(exc, httpx.RequestError):
        return f"Could not reach quote service: {exc}"
    return str(exc) or exc.__class__.__name__


class QuoteController:
    """Turns an ``OrderIntent`` into a deposit/expense ``Quote``.

    In ``expense`` mode (the default) the deposit is fixed by the user's amount
    and the service prices the expense; ``deposit`` mode is the reverse.
    Identical intents share one request; any newer intent supersedes older
    in-flight requests, whose responses are discarded on arrival.
    """

    def __init__(
        self,
        service: Any,
        *,
        mode: str = QUOTE_MODE_EXPENSE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if mode not in (QUOTE_MODE_EXPENSE, QUOTE_MODE_DEPOSIT):
            raise ValueError(f"Unknown quote mode {mode!r}")
        self._service = service
        self.mode = mode
        self._logger = logger or logging.getLogger(__name__)
        self._generation = RequestGeneration("quote")
        self._current = Quote()
        self._inflight: Optional[Tuple[QuoteKey, "asyncio.Task[Quote]"]] = None

    @property
    def current(self) -> Quote:
        return self._current

    @staticmethod
    def is_quotable(intent: Optional[OrderIntent]) -> bool:
        return (
            intent is not None
            and intent.src_asset is not None
            and intent.dest_asset is not None
            and is_positive_amount(intent.raw_amount)
        )

    def build_request(self, intent: OrderIntent) -> Dict[str, Any]:
        src, dest = intent.src_asset, intent.dest_asset
        deposit: Dict[str, Any] = {"token": _token_field(src)}
        expense: Dict[str, Any] = {"token": _token_field(dest)}
        if self.mode == QUOTE_MODE_EXPENSE:
            deposit["amount"] = str(parse_units(intent.raw_amount, src.decimals))
        else:
            expense["amount"] = str(parse_units(intent.raw_amount, dest.decimals))
        return {
            "srcChainId": intent.src_chain_id,
            "destChainId": intent.dest_chain_id,
            "deposit": deposit,
            "expense": expense,
            "mode": self.mode,
        }

    def disable(self) -> Quote:
        """Drop to the neutral state and supersede anything in flight."""

        self._generation.invalidate()
        self._inflight = None
        self._current = Quote()
        return self._current

    async def get_quote(self, intent: Optional[OrderIntent]) -> Quote:
        if not self.is_quotable(intent):
            return self.disable()

        key = intent.quote_key
        if self._current.key == key and self._current.is_success:
            return self._current
        if self._inflight is not None and self._inflight[0] == key:
            return await self._inflight[1]

        generation = self._generation.next()
        self._current = Quote(status=QuoteStatus.PENDING, key=key, generation=generation)
        task = asyncio.ensure_future(self._fetch(intent, key, generation))
        self._inflight = (key, task)
        try:
            return await task
        finally:
            if self._inflight is not None and self._inflight[1] is task:
                self._inflight = None

    async def _fetch(self, intent: OrderIntent, key: QuoteKey, generation: int) -> Quote:
        try:
            request = self.build_request(intent)
            response = await self._service.quote(request)
            result = Quote(
                status=QuoteStatus.SUCCESS,
                deposit_amount=_parse_quoted_amount(response.get("deposit"), "deposit"),
                expense_amount=_parse_quoted_amount(response.get("expense"), "expense"),
                key=key,
                generation=generation,
            )
        except Exception as exc:
            detail = _describe_failure(exc)
            result = Quote(status=QuoteStatus.ERROR, error_detail=detail, key=key, generation=generation)

        if not self._generation.is_current(generation):
            self._logger.debug(f"Discarding superseded quote (generation {generation})")
            return self._current

        if result.is_error:
            self._logger.warning(f"Quote failed for {intent.src_chain_id} -> {intent.dest_chain_id}: {result.error_detail}")
        else:
            self._logger.info(
                f"Quote {intent.src_chain_id} -> {intent.dest_chain_id}: "
                f"deposit={result.deposit_amount} expense={result.expense_amount}"
            )
        self._current = result
        return result
