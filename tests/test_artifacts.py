import json
import logging
from pathlib import Path

import pytest

from deployer.artifacts import ArtifactStore, configure_logging
from deployer.errors import ArtifactIOError


def test_artifact_round_trip_is_byte_identical(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path / "nested" / "cache", "Greeter")
    bytecode = "608060405234801561001057600080fd5b50"
    abi_bytes = json.dumps([{"type": "function", "name": "greet", "inputs": []}], indent=1).encode("utf-8")

    store.save_artifacts(bytecode, abi_bytes)

    assert store.load_bytecode() == bytecode
    assert store.load_abi_bytes() == abi_bytes
    assert store.bin_path.read_bytes() == bytecode.encode("utf-8")
    assert store.abi_path.name == "Greeter.abi"
    assert sorted(p.name for p in store.cache_dir.iterdir()) == ["Greeter.abi", "Greeter.bin"]


def test_save_artifacts_overwrites(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path / "cache", "Greeter")
    store.save_artifacts("aa", b"[]")
    store.save_artifacts("bb", b"[{}]")
    assert store.load_bytecode() == "bb"
    assert store.load_abi_bytes() == b"[{}]"


def test_load_address_missing_is_none(tmp_path: Path) -> None:
    assert ArtifactStore(tmp_path / "cache", "Greeter").load_address() is None


def test_address_round_trip_has_no_newline(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path / "cache", "Greeter")
    address = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    store.save_address(address)
    assert store.address_path.read_text(encoding="utf-8") == address
    assert store.load_address() == address


def test_load_address_tolerates_trailing_newline(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path, "Greeter")
    store.address_path.write_text("0x5fbdb2315678afecb367f032d93f642f64180aa3\n", encoding="utf-8")
    assert store.load_address() == "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def test_corrupt_address_is_fatal(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path, "Greeter")
    store.address_path.write_text("0x5fbdb2315678", encoding="utf-8")
    with pytest.raises(ArtifactIOError):
        store.load_address()


def test_non_utf8_address_is_corruption(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path, "Greeter")
    store.address_path.write_bytes(b"0x\xff\xfe" + b"0" * 38)
    with pytest.raises(ArtifactIOError, match="corrupt contract address"):
        store.load_address()


def test_unreadable_address_is_fatal_not_a_miss(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path, "Greeter")
    store.address_path.mkdir()
    with pytest.raises(ArtifactIOError):
        store.load_address()


def test_cache_dir_blocked_by_file(tmp_path: Path) -> None:
    blocker = tmp_path / "cache"
    blocker.write_text("not a directory", encoding="utf-8")
    store = ArtifactStore(blocker, "Greeter")
    with pytest.raises(ArtifactIOError):
        store.save_artifacts("aa", b"[]")
    with pytest.raises(ArtifactIOError):
        store.save_address("0x5FbDB2315678afecb367f032d93F642f64180aa3")


def test_configure_logging_writes_file(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "deploy.log"
    root = configure_logging("DEBUG", log_path)
    try:
        logging.getLogger("deployer.test").info("hello from test")
        for handler in root.handlers:
            handler.flush()
        assert root.level == logging.DEBUG
        assert "hello from test" in log_path.read_text(encoding="utf-8")
    finally:
        for handler in list(root.handlers):
            handler.close()
        root.handlers.clear()
