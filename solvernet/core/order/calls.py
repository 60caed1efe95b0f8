"""
Call Builder

Encodes destination-side actions into ``CallSpec`` records:

- native value transfers (payout to the wallet)
- ERC-20 ``transfer`` calls
- arbitrary functions of verified contracts, with user-typed arguments

Argument coercion is deliberately permissive so a preview can always be
shown: missing or malformed values fall back to placeholders and the call is
flagged ``incomplete``, which keeps it out of any submittable order.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ...services.address import is_valid_address
from .constants import ERC20_TRANSFER_ABI, ZERO_ADDRESS
from .errors import AbiLookupError, InvalidAddress, InvalidArgument
from .generation import RequestGeneration
from .models import Asset, CallSpec, ContractFunction

logger = logging.getLogger(__name__)

FunctionRef = Union[ContractFunction, Mapping[str, Any], str]


def _is_integer_type(arg_type: str) -> bool:
    return arg_type.startswith("uint") or arg_type.startswith("int")


def _parse_integer_literal(text: str) -> int:
    """Integer literal in decimal or with a 0x/0o/0b prefix."""

    stripped = text.strip()
    try:
        return int(stripped, 10)
    except ValueError:
        return int(stripped, 0)


def coerce_argument(arg_type: str, raw: Optional[str]) -> Tuple[Any, Optional[str]]:
    """Coerce one raw input to its call value.

    Returns ``(value, issue)``; ``issue`` is None when the raw text was usable.
    """

    missing = raw is None or raw == ""
    if _is_integer_type(arg_type):
        if missing:
            return "0", "missing value"
        try:
            number = _parse_integer_literal(raw)
        except ValueError:
            return "0", f"{raw!r} is not an integer"
        if arg_type.startswith("uint") and number < 0:
            return "0", f"{raw!r} is negative"
        return str(number), None
    if arg_type == "bool":
        if missing:
            return False, "missing value"
        return raw == "true", None
    if arg_type == "address":
        if missing:
            return ZERO_ADDRESS, "missing value"
        if not is_valid_address(raw):
            return ZERO_ADDRESS, f"{raw!r} is not a valid address"
        return raw, None
    if missing:
        return "", "missing value"
    return raw, None


class CallBuilder:
    """Builds ``CallSpec``s and ordered call lists for an order."""

    @staticmethod
    def resolve_function(function: FunctionRef) -> ContractFunction:
        if isinstance(function, ContractFunction):
            return function
        if isinstance(function, str):
            return ContractFunction.from_signature(function)
        return ContractFunction.from_abi(dict(function))

    @staticmethod
    def build_native_transfer_call(recipient: str, amount: int) -> CallSpec:
        """Value-only call paying ``amount`` of the native currency to ``recipient``."""
        return CallSpec(target=recipient, value=int(amount))

    @staticmethod
    def build_token_transfer_call(token: str, recipient: str, amount: int) -> CallSpec:
        return CallSpec(
            target=token,
            value=0,
            function_name="transfer",
            abi=(ERC20_TRANSFER_ABI,),
            args=(recipient, int(amount)),
        )

    @classmethod
    def build_arbitrary_call(
        cls,
        contract_address: str,
        function: FunctionRef,
        raw_inputs: Optional[Mapping[str, str]] = None,
        *,
        strict: bool = False,
    ) -> CallSpec:
        """Encode a call to ``function`` on ``contract_address``.

        Raises:
            InvalidAddress: contract address is malformed
            InvalidArgument: ``strict`` is set and an input is missing or unusable
        """

        if not is_valid_address(contract_address):
            raise InvalidAddress(contract_address, "contract address")

        fn = cls.resolve_function(function)
        raw_inputs = raw_inputs or {}
        args: List[Any] = []
        issues: List[str] = []
        for param in fn.inputs:
            raw = raw_inputs.get(param.name)
            value, issue = coerce_argument(param.type, raw)
            if issue is not None:
                if strict:
                    raise InvalidArgument(param.name, param.type, raw, issue)
                issues.append(InvalidArgument(param.name, param.type, raw, issue).message)
            args.append(value)

        if issues:
            logger.debug(f"Call {fn.name} on {contract_address} is incomplete: {issues}")

        return CallSpec(
            target=contract_address,
            value=0,
            function_name=fn.name,
            abi=(fn.to_abi(),),
            args=tuple(args),
            incomplete=bool(issues),
            issues=tuple(issues),
        )

    @classmethod
    def build_call_list(
        cls,
        *,
        dest_asset: Optional[Asset],
        recipient: Optional[str],
        expense_amount: int,
        contract_address: Optional[str] = None,
        function: Optional[FunctionRef] = None,
        raw_inputs: Optional[Mapping[str, str]] = None,
    ) -> List[CallSpec]:
        """Payout to the wallet first, then at most one arbitrary call.

        The payout is skipped while no wallet is connected; the arbitrary call
        is skipped until a function is chosen on a well-formed address.
        """

        calls: List[CallSpec] = []
        if dest_asset is not None and recipient:
            if dest_asset.is_native:
                calls.append(cls.build_native_transfer_call(recipient, expense_amount))
            elif dest_asset.address:
                calls.append(cls.build_token_transfer_call(dest_asset.address, recipient, expense_amount))

        if function is not None and contract_address and is_valid_address(contract_address):
            calls.append(cls.build_arbitrary_call(contract_address, function, raw_inputs))
        return calls


class ContractInspector:
    """Loads a contract's ABI for the function picker.

    Each lookup supersedes the previous one; a late response for an older
    address is dropped.
    """

    def __init__(self, abi_lookup: Any, *, logger: Optional[logging.Logger] = None) -> None:
        self._lookup = abi_lookup
        self._logger = logger or logging.getLogger(__name__)
        self._generation = RequestGeneration("abi")
        self.address: Optional[str] = None
        self.functions: List[ContractFunction] = []
        self.error: Optional[str] = None
        self.loading = False

    def clear(self) -> None:
        self._generation.invalidate()
        self.address = None
        self.functions = []
        self.error = None
        self.loading = False

    async def load(self, address: str, chain_id: int) -> List[ContractFunction]:
        """Fetch write functions for ``address``; errors are kept on ``self.error``."""

        if not address or not is_valid_address(address):
            self.clear()
            return []

        generation = self._generation.next()
        self.address = address
        self.loading = True
        self.error = None
        try:
            abi = await self._lookup.get_abi(address, chain_id)
            functions = [
                ContractFunction.from_abi(entry)
                for entry in abi
                if isinstance(entry, dict) and entry.get("type") == "function"
            ]
            writable = [fn for fn in functions if fn.is_write]
        except AbiLookupError as exc:
            if not self._generation.is_current(generation):
                return self.functions
            self._logger.warning(f"ABI lookup failed for {address} on {chain_id}: {exc.message}")
            self.error = exc.message
            self.functions = []
            self.loading = False
            return []
        except Exception as exc:
            if not self._generation.is_current(generation):
                return self.functions
            self._logger.warning(f"ABI lookup failed for {address} on {chain_id}: {exc}")
            self.error = str(exc) or "Failed to fetch ABI"
            self.functions = []
            self.loading = False
            return []

        if not self._generation.is_current(generation):
            self._logger.debug(f"Discarding ABI for superseded address {address}")
            return self.functions

        self.functions = writable
        self.loading = False
        return writable

    def find(self, name: str) -> Optional[ContractFunction]:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None

    @staticmethod
    def empty_inputs(function: ContractFunction) -> Dict[str, str]:
        """Fresh input map for a newly selected function."""
        return {param.name: "" for param in function.inputs}
