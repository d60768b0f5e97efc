from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from eth_abi.abi import decode as abi_decode, encode as abi_encode
from eth_utils.abi import collapse_if_tuple, function_signature_to_4byte_selector
from eth_utils.address import to_checksum_address

from deployer.config import DEFAULT_GAS_LIMIT
from deployer.errors import InvocationError
from deployer.transact import build_transact_options, ensure_chain_id, require_chain_id


logger = logging.getLogger(__name__)

_READ_ONLY = ("view", "pure")


def find_function(abi: Sequence[Dict[str, Any]], name: str, n_args: int) -> Dict[str, Any]:
    candidates = [
        item
        for item in abi
        if item.get("type", "function") == "function"
        and item.get("name") == name
        and len(item.get("inputs") or []) == n_args
    ]
    if not candidates:
        raise InvocationError(f"no function {name} taking {n_args} argument(s) in ABI")
    if len(candidates) > 1:
        raise InvocationError(f"function {name} with {n_args} argument(s) is overloaded in ABI")
    return candidates[0]


def _types(params: Optional[List[Dict[str, Any]]]) -> List[str]:
    return [collapse_if_tuple(p) for p in (params or [])]


def encode_call(fn_abi: Dict[str, Any], args: Sequence[Any]) -> bytes:
    types = _types(fn_abi.get("inputs"))
    signature = f"{fn_abi['name']}({','.join(types)})"
    try:
        encoded = abi_encode(types, list(args))
    except Exception as exc:
        raise InvocationError(f"failed to encode arguments for {signature}: {exc}") from exc
    return function_signature_to_4byte_selector(signature) + encoded


def decode_result(fn_abi: Dict[str, Any], raw: bytes) -> Any:
    types = _types(fn_abi.get("outputs"))
    if not types:
        return None
    if not raw:
        raise InvocationError(f"empty result from {fn_abi['name']} (no contract code at address?)")
    try:
        values = abi_decode(types, bytes(raw))
    except Exception as exc:
        raise InvocationError(f"failed to decode {fn_abi['name']} result: {exc}") from exc
    if len(values) == 1:
        return values[0]
    return tuple(values)


class ContractInvoker:
    """Setter/getter access to a deployed contract.

    ``chain_id`` has no default. Views never sign, so it may be None for a
    read-only invoker; ``invoke_mutating`` rejects a missing id before it
    builds anything.
    """

    def __init__(
        self,
        chain: Any,
        address: str,
        abi: List[Dict[str, Any]],
        account: Any,
        *,
        chain_id: Optional[int],
        gas_limit: int = DEFAULT_GAS_LIMIT,
    ) -> None:
        self.chain = chain
        self.address = to_checksum_address(address)
        self.abi = list(abi)
        self.account = account
        self.chain_id = chain_id
        self.gas_limit = int(gas_limit)
        self._chain_checked = False

    def invoke_mutating(self, method: str, *args: Any) -> str:
        fn_abi = find_function(self.abi, method, len(args))
        if fn_abi.get("stateMutability") in _READ_ONLY or fn_abi.get("constant"):
            raise InvocationError(f"{method} is read-only; use invoke_view")
        chain_id = require_chain_id(self.chain_id)
        if not self._chain_checked:
            ensure_chain_id(self.chain, chain_id)
            self._chain_checked = True

        opts = build_transact_options(
            self.chain,
            self.account.address,
            gas_limit=self.gas_limit,
            chain_id=chain_id,
        )
        tx = self.chain.build_call_tx(self.address, self.abi, method, list(args), opts.to_tx_params())
        tx_hash = self.chain.send(self.account, tx)
        logger.info("%s transaction hash: %s", method, tx_hash)
        return tx_hash

    def invoke_view(self, method: str, *args: Any) -> Any:
        fn_abi = find_function(self.abi, method, len(args))
        raw = self.chain.call(self.address, encode_call(fn_abi, args))
        result = decode_result(fn_abi, raw)
        logger.info("%s() -> %r", method, result)
        return result
