from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from deployer.artifacts import ArtifactStore
from deployer.compiler import CompiledArtifact
from deployer.config import DEFAULT_GAS_LIMIT, DEFAULT_RECEIPT_TIMEOUT_S, GAS_ESTIMATE_BUFFER
from deployer.errors import ChainError, InsufficientFundsError, StaleAddressError
from deployer.transact import build_transact_options, ensure_chain_id, require_chain_id


logger = logging.getLogger(__name__)

REUSE = "reuse"
DEPLOY = "deploy"


@dataclass(frozen=True)
class DeploymentDecision:
    action: str
    address: str
    tx_hash: Optional[str] = None

    @property
    def deployed(self) -> bool:
        return self.action == DEPLOY


class DeploymentOrchestrator:
    """Deploy a contract once and reuse the cached address afterwards.

    The only state is whether ``cache/address`` exists. A cached address is
    trusted as-is; with ``verify_cached_code`` the address must at least have
    code on chain. A crash between submission and the address write leaves no
    cache entry, so the next run deploys again.
    """

    def __init__(
        self,
        chain: Any,
        store: ArtifactStore,
        account: Any,
        *,
        chain_id: int,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        estimate_gas: bool = False,
        receipt_timeout_s: float = DEFAULT_RECEIPT_TIMEOUT_S,
        verify_cached_code: bool = False,
    ) -> None:
        self.chain = chain
        self.store = store
        self.account = account
        self.chain_id = require_chain_id(chain_id)
        self.gas_limit = int(gas_limit)
        self.estimate_gas = bool(estimate_gas)
        self.receipt_timeout_s = float(receipt_timeout_s)
        self.verify_cached_code = bool(verify_cached_code)

    def _reuse(self, address: str) -> DeploymentDecision:
        if self.verify_cached_code:
            code = self.chain.get_code(address)
            if not code:
                raise StaleAddressError(
                    f"cached address {address} has no contract code; delete {self.store.address_path} to redeploy"
                )
        logger.info("Contract already deployed at address: %s", address)
        return DeploymentDecision(action=REUSE, address=address)

    def _gas_limit_for(self, artifact: CompiledArtifact, constructor_args: Sequence[Any]) -> int:
        if not self.estimate_gas:
            return self.gas_limit
        estimated = self.chain.estimate_deploy_gas(
            artifact.abi, artifact.bytecode, list(constructor_args), self.account.address
        )
        limit = int(int(estimated) * GAS_ESTIMATE_BUFFER)
        logger.info("Estimated deployment gas %d, using limit %d", estimated, limit)
        return limit

    def decide(self, artifact: CompiledArtifact, constructor_args: Sequence[Any] = ()) -> DeploymentDecision:
        cached = self.store.load_address()
        if cached is not None:
            return self._reuse(cached)

        sender = self.account.address
        ensure_chain_id(self.chain, self.chain_id)
        opts = build_transact_options(
            self.chain,
            sender,
            gas_limit=self._gas_limit_for(artifact, constructor_args),
            chain_id=self.chain_id,
        )

        balance = int(self.chain.balance(sender))
        needed = opts.max_cost()
        logger.info("Account balance: %d", balance)
        logger.info("Total transaction cost: %d", needed)
        if balance < needed:
            raise InsufficientFundsError(balance, needed)

        logger.info(
            "Deploying %s from %s (nonce=%d gas_limit=%d gas_price=%d)",
            artifact.name,
            sender,
            opts.nonce,
            opts.gas_limit,
            opts.gas_price,
        )
        tx = self.chain.build_deploy_tx(artifact.abi, artifact.bytecode, list(constructor_args), opts.to_tx_params())
        tx_hash = self.chain.send(self.account, tx)
        logger.info("Transaction hash: %s", tx_hash)

        receipt = self.chain.wait_for_receipt(tx_hash, timeout_s=self.receipt_timeout_s)
        address = receipt.get("contractAddress")
        if int(receipt.get("status", 0) or 0) != 1 or not address:
            raise ChainError(f"deployment transaction {tx_hash} failed (status={receipt.get('status')})")

        logger.info("Contract deployed to address: %s", address)
        self.store.save_address(str(address))
        return DeploymentDecision(action=DEPLOY, address=str(address), tx_hash=tx_hash)
