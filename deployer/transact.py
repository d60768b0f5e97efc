from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from deployer.errors import ChainIdError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactOptions:
    sender: str
    nonce: int
    value: int
    gas_limit: int
    gas_price: int
    chain_id: int

    def max_cost(self) -> int:
        return int(self.gas_limit) * int(self.gas_price) + int(self.value)

    def to_tx_params(self) -> Dict[str, Any]:
        return {
            "from": self.sender,
            "nonce": int(self.nonce),
            "value": int(self.value),
            "gas": int(self.gas_limit),
            "gasPrice": int(self.gas_price),
            "chainId": int(self.chain_id),
        }


def require_chain_id(chain_id: Optional[int]) -> int:
    if chain_id is None or isinstance(chain_id, bool):
        raise ChainIdError("an explicit chain id is required to sign transactions")
    try:
        cid = int(chain_id)
    except (TypeError, ValueError) as exc:
        raise ChainIdError(f"invalid chain id: {chain_id!r}") from exc
    if cid <= 0:
        raise ChainIdError(f"invalid chain id: {cid}")
    return cid


def ensure_chain_id(chain: Any, expected: int) -> None:
    """Refuse to sign for a node that reports a different network."""
    actual = int(chain.chain_id())
    if actual != int(expected):
        raise ChainIdError(f"chain id mismatch: configured {expected}, rpc reports {actual}")


def build_transact_options(
    chain: Any,
    sender: str,
    *,
    gas_limit: int,
    chain_id: int,
    value: int = 0,
) -> TransactOptions:
    """Fresh options per transaction: the pending nonce must advance."""
    nonce = chain.pending_nonce(sender)
    gas_price = chain.gas_price()
    logger.info("Using nonce: %d", nonce)
    logger.info("Using gas price: %d", gas_price)
    return TransactOptions(
        sender=sender,
        nonce=int(nonce),
        value=int(value),
        gas_limit=int(gas_limit),
        gas_price=int(gas_price),
        chain_id=require_chain_id(chain_id),
    )
