from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

from eth_utils.address import is_hex_address, to_checksum_address

from deployer.config import ADDRESS_FILE_NAME
from deployer.errors import ArtifactIOError


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root.handlers.clear()

    fmt = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(fmt)
    root.addHandler(stream_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    return root


def _write_bytes(path: Path, data: bytes) -> None:
    # Write beside the target and swap in, so a crash never leaves a half file.
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        tmp.write_bytes(data)
        os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except OSError:
        try:
            tmp.unlink(missing_ok=True)
        except OSError:
            pass
        raise


class ArtifactStore:
    """Compiled bytecode, ABI and deployed address for one contract.

    Layout under ``cache_dir``::

        <Name>.bin   hex bytecode text
        <Name>.abi   raw ABI JSON bytes
        address      hex address text, no trailing newline
    """

    def __init__(self, cache_dir: Union[str, Path], contract_name: str) -> None:
        self.cache_dir = Path(cache_dir)
        self.contract_name = str(contract_name)

    @property
    def bin_path(self) -> Path:
        return self.cache_dir / f"{self.contract_name}.bin"

    @property
    def abi_path(self) -> Path:
        return self.cache_dir / f"{self.contract_name}.abi"

    @property
    def address_path(self) -> Path:
        return self.cache_dir / ADDRESS_FILE_NAME

    def ensure_dir(self) -> None:
        try:
            self.cache_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as exc:
            raise ArtifactIOError(f"failed to create cache directory {self.cache_dir}: {exc}") from exc

    def save_artifacts(self, bytecode: str, abi_bytes: bytes) -> None:
        self.ensure_dir()
        try:
            _write_bytes(self.bin_path, str(bytecode).encode("utf-8"))
        except OSError as exc:
            raise ArtifactIOError(f"failed to save bytecode to {self.bin_path}: {exc}") from exc
        try:
            _write_bytes(self.abi_path, bytes(abi_bytes))
        except OSError as exc:
            raise ArtifactIOError(f"failed to save ABI to {self.abi_path}: {exc}") from exc
        logger.info("Saved ABI and bytecode to %s", self.cache_dir)

    def load_bytecode(self) -> str:
        try:
            return self.bin_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ArtifactIOError(f"failed to load bytecode from {self.bin_path}: {exc}") from exc

    def load_abi_bytes(self) -> bytes:
        try:
            return self.abi_path.read_bytes()
        except OSError as exc:
            raise ArtifactIOError(f"failed to load ABI from {self.abi_path}: {exc}") from exc

    def load_address(self) -> Optional[str]:
        """Return the cached address, or None when nothing was deployed yet."""
        try:
            raw = self.address_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            raise ArtifactIOError(f"corrupt contract address in {self.address_path}: not UTF-8 text") from exc
        except OSError as exc:
            raise ArtifactIOError(f"failed to load contract address from {self.address_path}: {exc}") from exc
        address = raw.strip()
        if not is_hex_address(address):
            raise ArtifactIOError(f"corrupt contract address in {self.address_path}: {raw[:64]!r}")
        return to_checksum_address(address)

    def save_address(self, address: str) -> None:
        self.ensure_dir()
        try:
            _write_bytes(self.address_path, str(address).encode("utf-8"))
        except OSError as exc:
            raise ArtifactIOError(f"failed to save contract address to {self.address_path}: {exc}") from exc
        logger.info("Saved contract address to %s", self.address_path)
