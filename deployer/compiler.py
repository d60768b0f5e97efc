from __future__ import annotations

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from deployer.errors import CompilerError, ConfigError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledArtifact:
    name: str
    bytecode: str
    abi: List[Dict[str, Any]]
    abi_json: bytes
    metadata: Optional[str] = None


def _field(entry: Dict[str, Any], name: str) -> Any:
    # solc emits lower-case keys; accept the capitalised spelling too.
    if name in entry:
        return entry[name]
    return entry.get(name.capitalize()) if name != "abi" else entry.get("ABI")


def _parse_abi(raw: Any, key: str) -> List[Dict[str, Any]]:
    abi = raw
    if isinstance(raw, str):
        try:
            abi = json.loads(raw)
        except ValueError as exc:
            raise CompilerError(f"failed to parse ABI for {key}: {exc}") from exc
    if not isinstance(abi, list):
        raise CompilerError(f"ABI for {key} is not a list")
    return abi


def _short_name(key: str) -> str:
    return key.rsplit(":", 1)[-1]


def parse_combined_json(raw: Union[str, bytes], contract_name: Optional[str] = None) -> CompiledArtifact:
    """Pick one contract out of ``solc --combined-json abi,bin`` output."""
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise CompilerError(f"failed to parse solc output: {exc}") from exc
    contracts = data.get("contracts") if isinstance(data, dict) else None
    if not isinstance(contracts, dict) or not contracts:
        raise CompilerError("no contract found in solc output")

    if contract_name:
        matches = [k for k in contracts if k == contract_name or _short_name(k) == contract_name]
        if not matches:
            found = ", ".join(sorted(_short_name(k) for k in contracts))
            raise CompilerError(f"contract {contract_name} not found in solc output (found: {found})")
        if len(matches) > 1:
            raise ConfigError(
                f"contract name {contract_name} is ambiguous; use <path>:<Name>",
                sorted(matches),
            )
        key = matches[0]
    else:
        # Interfaces and abstract contracts compile to empty bytecode.
        deployable = [k for k, v in contracts.items() if isinstance(v, dict) and _field(v, "bin")]
        if not deployable:
            raise CompilerError("no deployable contract found in solc output")
        if len(deployable) > 1:
            raise ConfigError("multiple contracts compiled; set CONTRACT_NAME to pick one", sorted(deployable))
        key = deployable[0]

    entry = contracts[key]
    if not isinstance(entry, dict):
        raise CompilerError(f"malformed solc entry for {key}")
    bytecode = str(_field(entry, "bin") or "").strip()
    if not bytecode:
        raise CompilerError(f"contract {key} has no bytecode (abstract or interface?)")
    abi = _parse_abi(_field(entry, "abi"), key)
    metadata = _field(entry, "metadata")

    return CompiledArtifact(
        name=_short_name(key),
        bytecode=bytecode,
        abi=abi,
        abi_json=json.dumps(abi, separators=(",", ":")).encode("utf-8"),
        metadata=str(metadata) if metadata else None,
    )


def compile_contract(
    source_path: Union[str, Path],
    *,
    contract_name: Optional[str] = None,
    solc: Optional[str] = None,
    optimize: bool = False,
) -> CompiledArtifact:
    solc_bin = solc or shutil.which("solc")
    if not solc_bin:
        raise CompilerError("solc not found in PATH (install solc to compile contracts)")
    source = Path(source_path)
    if not source.is_file():
        raise CompilerError(f"contract source not found: {source}")

    cmd = [solc_bin]
    if optimize:
        cmd.append("--optimize")
    cmd.extend(["--combined-json", "abi,bin", str(source)])
    logger.info("Compiling %s", source)
    try:
        proc = subprocess.run(cmd, capture_output=True, check=False)
    except OSError as exc:
        raise CompilerError(f"failed to run {solc_bin}: {exc}") from exc
    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        raise CompilerError(f"failed to compile contract (exit {proc.returncode}): {stderr[:2000]}")

    artifact = parse_combined_json(proc.stdout, contract_name)
    logger.info("Compiled %s (%d bytes of bytecode)", artifact.name, len(artifact.bytecode) // 2)
    return artifact
