# infra/chain.py

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from deployer.errors import ChainError, ConfigError, InvocationError


logger = logging.getLogger(__name__)


def load_account(private_key_hex: str) -> LocalAccount:
    """Parse a hex private key (``0x`` prefix optional) into a signing account."""
    key = str(private_key_hex or "").strip()
    if key[:2].lower() == "0x":
        key = key[2:]
    try:
        return Account.from_key("0x" + key)
    except Exception as exc:
        # Never echo the key itself.
        raise ConfigError(f"failed to parse private key: {type(exc).__name__}") from exc


class Web3Chain:
    """Blocking chain client over a web3 provider.

    Every RPC failure surfaces as ChainError; nothing is retried.
    """

    def __init__(self, w3: Web3) -> None:
        self.w3 = w3

    @classmethod
    def connect(cls, rpc_url: str, *, request_timeout_s: Optional[float] = None) -> "Web3Chain":
        kwargs: Dict[str, Any] = {}
        if request_timeout_s:
            kwargs["request_kwargs"] = {"timeout": float(request_timeout_s)}
        w3 = Web3(Web3.HTTPProvider(rpc_url, **kwargs))
        try:
            connected = w3.is_connected()
        except Exception as exc:
            raise ChainError(f"rpc not connected: {exc}") from exc
        if not connected:
            raise ChainError(f"rpc not connected: {rpc_url}")
        logger.info("Connected to Ethereum client")
        return cls(w3)

    def _rpc(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except ChainError:
            raise
        except Exception as exc:
            raise ChainError(f"failed to {label}: {exc}") from exc

    def balance(self, address: str) -> int:
        return int(self._rpc("get balance", self.w3.eth.get_balance, address))

    def pending_nonce(self, address: str) -> int:
        return int(self._rpc("get nonce", self.w3.eth.get_transaction_count, address, "pending"))

    def gas_price(self) -> int:
        return int(self._rpc("get gas price", lambda: self.w3.eth.gas_price))

    def chain_id(self) -> int:
        return int(self._rpc("get chain id", lambda: self.w3.eth.chain_id))

    def get_code(self, address: str) -> bytes:
        return bytes(self._rpc("get code", self.w3.eth.get_code, address))

    def estimate_deploy_gas(self, abi: List[Dict[str, Any]], bytecode: str, args: Sequence[Any], sender: str) -> int:
        contract = self.w3.eth.contract(abi=abi, bytecode=bytecode)
        return int(self._rpc("estimate deployment gas", lambda: contract.constructor(*args).estimate_gas({"from": sender})))

    def build_deploy_tx(
        self,
        abi: List[Dict[str, Any]],
        bytecode: str,
        args: Sequence[Any],
        tx_params: Dict[str, Any],
    ) -> Dict[str, Any]:
        contract = self.w3.eth.contract(abi=abi, bytecode=bytecode)
        return dict(self._rpc("build deployment", lambda: contract.constructor(*args).build_transaction(tx_params)))

    def build_call_tx(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        method: str,
        args: Sequence[Any],
        tx_params: Dict[str, Any],
    ) -> Dict[str, Any]:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        try:
            fn = contract.get_function_by_name(method)
        except Exception as exc:
            raise InvocationError(f"method {method} not callable on {address}: {exc}") from exc
        return dict(self._rpc(f"build {method} transaction", lambda: fn(*args).build_transaction(tx_params)))

    def send(self, account: LocalAccount, tx: Dict[str, Any]) -> str:
        signed = account.sign_transaction(tx)
        tx_hash = self._rpc("send transaction", self.w3.eth.send_raw_transaction, signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str, *, timeout_s: float) -> Dict[str, Any]:
        receipt = self._rpc(
            "wait for receipt",
            self.w3.eth.wait_for_transaction_receipt,
            tx_hash,
            timeout=float(timeout_s),
        )
        return dict(receipt)

    def call(self, to: str, data: bytes) -> bytes:
        params = {"to": Web3.to_checksum_address(to), "data": "0x" + bytes(data).hex()}
        return bytes(self._rpc("call contract", self.w3.eth.call, params, "latest"))
