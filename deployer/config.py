# deployer/config.py
# NOTE:
# Do not hardcode private keys in the repo. Provide the deployer key via env var
# (PRIVATE_KEY) or a local .env file and keep both out of git.

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import dotenv_values

from deployer.errors import ConfigError


# Source compiled on every run and the contract picked out of solc's output.
DEFAULT_CONTRACT_PATH = "contracts/Greeter.sol"
DEFAULT_CONTRACT_NAME = "Greeter"

# Cache dir is relative to the working directory.
DEFAULT_CACHE_DIR = "cache"
ADDRESS_FILE_NAME = "address"

# Fixed deployment/invocation gas limit. Not estimated unless ESTIMATE_GAS is on.
DEFAULT_GAS_LIMIT = 3_000_000
# eth_estimateGas result is multiplied by this when estimation is enabled.
GAS_ESTIMATE_BUFFER = 1.2

# Same default as web3's wait_for_transaction_receipt.
DEFAULT_RECEIPT_TIMEOUT_S = 120.0

# Greeter round trip.
DEFAULT_INITIAL_GREETING = "Hello, World!"
DEFAULT_NEW_GREETING = "Hello, Ethereum!"
DEFAULT_SET_METHOD = "setGreeting"
DEFAULT_GET_METHOD = "greet"

DEFAULT_ENV_FILE = ".env"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}
_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class DeployConfig:
    rpc_url: str
    private_key: str
    chain_id: int
    contract_path: Path = Path(DEFAULT_CONTRACT_PATH)
    contract_name: Optional[str] = DEFAULT_CONTRACT_NAME
    cache_dir: Path = Path(DEFAULT_CACHE_DIR)
    solc_binary: Optional[str] = None
    solc_optimize: bool = False
    gas_limit: int = DEFAULT_GAS_LIMIT
    estimate_gas: bool = False
    verify_cached_code: bool = False
    receipt_timeout_s: float = DEFAULT_RECEIPT_TIMEOUT_S
    wait_for_receipt: bool = True
    constructor_args: List[Any] = field(default_factory=lambda: [DEFAULT_INITIAL_GREETING])
    set_method: str = DEFAULT_SET_METHOD
    set_args: List[Any] = field(default_factory=lambda: [DEFAULT_NEW_GREETING])
    get_method: str = DEFAULT_GET_METHOD
    log_file: Optional[Path] = None
    log_level: str = "INFO"

    @property
    def lock_path(self) -> Path:
        return self.cache_dir.parent / f"{self.cache_dir.name}.lock"

    def __repr__(self) -> str:
        # Keep the key out of logs and tracebacks.
        return f"DeployConfig(rpc_url={self.rpc_url!r}, chain_id={self.chain_id}, contract={self.contract_name!r})"


def normalize_private_key(raw: Optional[str]) -> str:
    key = str(raw or "").strip()
    if key[:2].lower() == "0x":
        key = key[2:]
    return key


def _parse_bool(name: str, raw: Any, problems: List[str]) -> bool:
    if isinstance(raw, bool):
        return raw
    val = str(raw).strip().lower()
    if val in _TRUE:
        return True
    if val in _FALSE:
        return False
    problems.append(f"{name}: expected a boolean, got {raw!r}")
    return False


def _parse_int(name: str, raw: Any, problems: List[str], *, minimum: int = 1) -> Optional[int]:
    try:
        if isinstance(raw, str):
            text = raw.strip()
            val = int(text, 16) if text[:2].lower() == "0x" else int(text, 10)
        else:
            val = int(raw)
    except (TypeError, ValueError):
        problems.append(f"{name}: expected an integer, got {raw!r}")
        return None
    if val < minimum:
        problems.append(f"{name}: must be >= {minimum}, got {val}")
        return None
    return val


def _parse_float(name: str, raw: Any, problems: List[str]) -> Optional[float]:
    try:
        val = float(raw)
    except (TypeError, ValueError):
        problems.append(f"{name}: expected a number, got {raw!r}")
        return None
    if val <= 0:
        problems.append(f"{name}: must be > 0, got {val}")
        return None
    return val


def read_env(env_file: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Merge a .env file (if present) under the process environment."""
    merged: Dict[str, str] = {}
    path = Path(env_file) if env_file else Path(DEFAULT_ENV_FILE)
    if path.is_file():
        for k, v in dotenv_values(path).items():
            if v is not None:
                merged[k] = v
    elif env_file:
        raise ConfigError(f"env file not found: {path}")
    merged.update(os.environ if environ is None else environ)
    return merged


def load_config(
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> DeployConfig:
    """Build and validate a DeployConfig.

    ``overrides`` (CLI flags) win over ``env``. Entries whose value is None
    are ignored. Every problem found is reported in a single ConfigError.
    """
    src: Dict[str, Any] = dict(env if env is not None else read_env())
    for k, v in (overrides or {}).items():
        if v is not None:
            src[k] = v

    problems: List[str] = []

    rpc_url = str(src.get("RPC_URL") or src.get("INFURA_URL") or "").strip()
    if not rpc_url:
        problems.append("RPC_URL: required (RPC endpoint URL)")

    private_key = normalize_private_key(src.get("PRIVATE_KEY"))
    if not private_key:
        problems.append("PRIVATE_KEY: required (hex private key)")
    elif not _HEX_KEY.match(private_key):
        problems.append("PRIVATE_KEY: expected 64 hex characters (optionally 0x-prefixed)")

    chain_id = None
    if str(src.get("CHAIN_ID") or "").strip():
        chain_id = _parse_int("CHAIN_ID", src.get("CHAIN_ID"), problems)
    else:
        problems.append("CHAIN_ID: required (no default network)")

    kwargs: Dict[str, Any] = {}
    if src.get("CONTRACT_PATH"):
        kwargs["contract_path"] = Path(str(src["CONTRACT_PATH"]))
    if "CONTRACT_NAME" in src:
        kwargs["contract_name"] = str(src["CONTRACT_NAME"]).strip() or None
    if src.get("CACHE_DIR"):
        kwargs["cache_dir"] = Path(str(src["CACHE_DIR"]))
    if src.get("SOLC_BINARY"):
        kwargs["solc_binary"] = str(src["SOLC_BINARY"]).strip()
    if "SOLC_OPTIMIZE" in src:
        kwargs["solc_optimize"] = _parse_bool("SOLC_OPTIMIZE", src["SOLC_OPTIMIZE"], problems)
    if src.get("GAS_LIMIT"):
        gas_limit = _parse_int("GAS_LIMIT", src["GAS_LIMIT"], problems, minimum=21_000)
        if gas_limit is not None:
            kwargs["gas_limit"] = gas_limit
    if "ESTIMATE_GAS" in src:
        kwargs["estimate_gas"] = _parse_bool("ESTIMATE_GAS", src["ESTIMATE_GAS"], problems)
    if "VERIFY_CACHED_CODE" in src:
        kwargs["verify_cached_code"] = _parse_bool("VERIFY_CACHED_CODE", src["VERIFY_CACHED_CODE"], problems)
    if "WAIT_FOR_RECEIPT" in src:
        kwargs["wait_for_receipt"] = _parse_bool("WAIT_FOR_RECEIPT", src["WAIT_FOR_RECEIPT"], problems)
    if src.get("RECEIPT_TIMEOUT_S"):
        timeout = _parse_float("RECEIPT_TIMEOUT_S", src["RECEIPT_TIMEOUT_S"], problems)
        if timeout is not None:
            kwargs["receipt_timeout_s"] = timeout
    if "INITIAL_GREETING" in src:
        kwargs["constructor_args"] = [str(src["INITIAL_GREETING"])]
    if "NEW_GREETING" in src:
        kwargs["set_args"] = [str(src["NEW_GREETING"])]
    if src.get("SET_METHOD"):
        kwargs["set_method"] = str(src["SET_METHOD"]).strip()
    if src.get("GET_METHOD"):
        kwargs["get_method"] = str(src["GET_METHOD"]).strip()
    if src.get("LOG_FILE"):
        kwargs["log_file"] = Path(str(src["LOG_FILE"]))
    if src.get("LOG_LEVEL"):
        level = str(src["LOG_LEVEL"]).strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            problems.append(f"LOG_LEVEL: unknown level {src['LOG_LEVEL']!r}")
        else:
            kwargs["log_level"] = level

    if problems:
        raise ConfigError("invalid configuration", problems)

    return DeployConfig(rpc_url=rpc_url, private_key=private_key, chain_id=int(chain_id or 0), **kwargs)
