from __future__ import annotations

from typing import Iterable, Optional


EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIG = 2
EXIT_COMPILER = 3
EXIT_CHAIN = 4
EXIT_PRECONDITION = 5
EXIT_IO = 6


class DeployerError(Exception):
    """Base for every failure the pipeline reports to the CLI boundary."""

    kind = "error"
    exit_code = EXIT_UNEXPECTED


class ConfigError(DeployerError):
    kind = "config_error"
    exit_code = EXIT_CONFIG

    def __init__(self, message: str, problems: Optional[Iterable[str]] = None) -> None:
        self.problems = [str(p) for p in (problems or [])]
        if self.problems:
            message = message + ":\n" + "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(message)


class ChainIdError(ConfigError):
    kind = "chain_id_error"


class CompilerError(DeployerError):
    kind = "compiler_error"
    exit_code = EXIT_COMPILER


class ChainError(DeployerError):
    kind = "rpc_error"
    exit_code = EXIT_CHAIN


class InvocationError(ChainError):
    kind = "invocation_error"


class PreconditionError(DeployerError):
    kind = "precondition_failed"
    exit_code = EXIT_PRECONDITION


class InsufficientFundsError(PreconditionError):
    kind = "insufficient_funds"

    def __init__(self, balance: int, needed: int) -> None:
        self.balance = int(balance)
        self.needed = int(needed)
        super().__init__(f"insufficient funds: balance {self.balance}, needed {self.needed}")


class StaleAddressError(PreconditionError):
    kind = "stale_address"


class ArtifactIOError(DeployerError):
    kind = "io_error"
    exit_code = EXIT_IO


class CacheLockedError(ArtifactIOError):
    kind = "cache_locked"
