from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from deployer.artifacts import ArtifactStore
from deployer.cache_lock import CacheLock
from deployer.compiler import CompiledArtifact, compile_contract
from deployer.config import DeployConfig
from deployer.errors import ChainError
from deployer.invoker import ContractInvoker
from deployer.orchestrator import DeploymentDecision, DeploymentOrchestrator
from infra.chain import Web3Chain, load_account


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    artifact: CompiledArtifact
    decision: DeploymentDecision
    set_tx_hash: str
    view_result: Any


def _compile(cfg: DeployConfig, compiler: Callable[..., CompiledArtifact]) -> CompiledArtifact:
    return compiler(
        cfg.contract_path,
        contract_name=cfg.contract_name,
        solc=cfg.solc_binary,
        optimize=cfg.solc_optimize,
    )


def run(
    cfg: DeployConfig,
    *,
    chain: Optional[Any] = None,
    compiler: Callable[..., CompiledArtifact] = compile_contract,
    run_id: Optional[str] = None,
) -> RunResult:
    """compile -> persist artifacts -> deploy or reuse -> setter -> getter."""
    run_id = run_id or str(uuid.uuid4())
    account = load_account(cfg.private_key)
    logger.info("Using address: %s", account.address)
    if chain is None:
        chain = Web3Chain.connect(cfg.rpc_url)

    artifact = _compile(cfg, compiler)
    store = ArtifactStore(cfg.cache_dir, artifact.name)
    orchestrator = DeploymentOrchestrator(
        chain,
        store,
        account,
        chain_id=cfg.chain_id,
        gas_limit=cfg.gas_limit,
        estimate_gas=cfg.estimate_gas,
        receipt_timeout_s=cfg.receipt_timeout_s,
        verify_cached_code=cfg.verify_cached_code,
    )

    with CacheLock(cfg.lock_path).held(run_id=run_id):
        store.save_artifacts(artifact.bytecode, artifact.abi_json)
        decision = orchestrator.decide(artifact, cfg.constructor_args)

    invoker = ContractInvoker(
        chain,
        decision.address,
        artifact.abi,
        account,
        chain_id=cfg.chain_id,
        gas_limit=cfg.gas_limit,
    )
    logger.info("Calling %s%r", cfg.set_method, tuple(cfg.set_args))
    set_tx_hash = invoker.invoke_mutating(cfg.set_method, *cfg.set_args)
    if cfg.wait_for_receipt:
        receipt = chain.wait_for_receipt(set_tx_hash, timeout_s=cfg.receipt_timeout_s)
        if int(receipt.get("status", 0) or 0) != 1:
            raise ChainError(f"{cfg.set_method} transaction {set_tx_hash} reverted")

    view_result = invoker.invoke_view(cfg.get_method)
    return RunResult(artifact=artifact, decision=decision, set_tx_hash=set_tx_hash, view_result=view_result)
