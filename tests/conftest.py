from __future__ import annotations

import json
import subprocess
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import pytest
from eth_account import Account
from eth_utils.address import to_checksum_address

from deployer.compiler import CompiledArtifact


# Well-known local devnet key; never funded anywhere real.
TEST_KEY = "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
CHAIN_ID = 296
DEPLOYED = to_checksum_address("0x" + "5f" * 20)

GREETER_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [{"internalType": "string", "name": "_greeting", "type": "string"}],
        "stateMutability": "nonpayable",
        "type": "constructor",
    },
    {
        "inputs": [],
        "name": "greet",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "string", "name": "_greeting", "type": "string"}],
        "name": "setGreeting",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class FakeChain:
    """In-memory stand-in for infra.chain.Web3Chain."""

    def __init__(
        self,
        *,
        balance: int = 10**18,
        gas_price: int = 10**9,
        chain_id: int = CHAIN_ID,
        nonce: int = 7,
        code: bytes = b"\x60\x80",
        call_result: bytes = b"",
        deploy_status: int = 1,
        deployed_address: str = DEPLOYED,
    ) -> None:
        self._balance = balance
        self._gas_price = gas_price
        self._chain_id = chain_id
        self._nonce = nonce
        self.code = code
        self.call_result = call_result
        self.deploy_status = deploy_status
        self.deployed_address = deployed_address
        self.sent: List[Dict[str, Any]] = []
        self.calls: List[Dict[str, Any]] = []
        self.code_checks: List[str] = []
        self._kinds: Dict[str, str] = {}

    @property
    def deploys(self) -> List[Dict[str, Any]]:
        return [tx for tx in self.sent if tx["kind"] == "deploy"]

    def chain_id(self) -> int:
        return self._chain_id

    def balance(self, address: str) -> int:
        return self._balance

    def pending_nonce(self, address: str) -> int:
        return self._nonce

    def gas_price(self) -> int:
        return self._gas_price

    def get_code(self, address: str) -> bytes:
        self.code_checks.append(address)
        return self.code

    def estimate_deploy_gas(self, abi: Any, bytecode: str, args: Any, sender: str) -> int:
        return 500_000

    def build_deploy_tx(self, abi: Any, bytecode: str, args: Any, tx_params: Dict[str, Any]) -> Dict[str, Any]:
        return {"kind": "deploy", "data": bytecode, "args": list(args), **tx_params}

    def build_call_tx(self, address: str, abi: Any, method: str, args: Any, tx_params: Dict[str, Any]) -> Dict[str, Any]:
        return {"kind": "call", "to": address, "method": method, "args": list(args), **tx_params}

    def send(self, account: Any, tx: Dict[str, Any]) -> str:
        self.sent.append(tx)
        # Every submission consumes the pending nonce.
        self._nonce += 1
        tx_hash = "0x" + f"{len(self.sent):064x}"
        self._kinds[tx_hash] = tx["kind"]
        return tx_hash

    def wait_for_receipt(self, tx_hash: str, *, timeout_s: float) -> Dict[str, Any]:
        if self._kinds.get(tx_hash) == "deploy":
            address: Optional[str] = self.deployed_address if self.deploy_status == 1 else None
            return {"status": self.deploy_status, "contractAddress": address, "transactionHash": tx_hash}
        return {"status": 1, "contractAddress": None, "transactionHash": tx_hash}

    def call(self, to: str, data: bytes) -> bytes:
        self.calls.append({"to": to, "data": bytes(data)})
        return self.call_result


@pytest.fixture
def account():
    return Account.from_key("0x" + TEST_KEY)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def greeter_artifact() -> CompiledArtifact:
    return CompiledArtifact(
        name="Greeter",
        bytecode="6080604052348015600f57600080fd5b50",
        abi=GREETER_ABI,
        abi_json=json.dumps(GREETER_ABI, separators=(",", ":")).encode("utf-8"),
    )


@pytest.fixture
def make_chain():
    return FakeChain


REPO_ROOT = Path(__file__).resolve().parents[1]

_LOCK_HOLDER = (
    "import sys, time\n"
    "from deployer.cache_lock import CacheLock\n"
    "CacheLock(sys.argv[1]).acquire(run_id='other')\n"
    "print('held', flush=True)\n"
    "time.sleep(10)\n"
)


@contextmanager
def _held_elsewhere(lock_path: Path) -> Iterator[subprocess.Popen]:
    proc = subprocess.Popen(
        [sys.executable, "-c", _LOCK_HOLDER, str(lock_path)],
        cwd=str(REPO_ROOT),
        stdout=subprocess.PIPE,
        text=True,
    )
    try:
        assert proc.stdout is not None
        assert proc.stdout.readline().strip() == "held"
        yield proc
    finally:
        try:
            proc.terminate()
        except OSError:
            pass
        proc.wait(timeout=5)
        if proc.stdout is not None:
            proc.stdout.close()


@pytest.fixture
def held_elsewhere():
    """Context manager holding a cache lock from another live process."""
    return _held_elsewhere
