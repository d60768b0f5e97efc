from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from deployer.artifacts import configure_logging
from deployer.config import DEFAULT_ENV_FILE, load_config, read_env
from deployer.errors import EXIT_OK, EXIT_UNEXPECTED, DeployerError
from deployer.runner import run


logger = logging.getLogger("deployer")


def _bool_flag(value: bool) -> Optional[str]:
    return "true" if value else None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compile a contract, deploy it once, then call its setter and getter",
    )
    parser.add_argument("--rpc", help="RPC URL (env RPC_URL)")
    parser.add_argument("--private-key", help="deployer private key (env PRIVATE_KEY)")
    parser.add_argument("--chain-id", help="chain id to sign for (env CHAIN_ID)")
    parser.add_argument("--contract", help="Solidity source file (env CONTRACT_PATH)")
    parser.add_argument("--contract-name", help="contract to pick from solc output (env CONTRACT_NAME)")
    parser.add_argument("--cache-dir", help="artifact cache directory (env CACHE_DIR)")
    parser.add_argument("--solc", help="solc binary (env SOLC_BINARY)")
    parser.add_argument("--optimize", action="store_true", help="pass --optimize to solc")
    parser.add_argument("--env-file", default=None, help=f"dotenv file (default {DEFAULT_ENV_FILE} if present)")
    parser.add_argument("--gas-limit", help="fixed gas limit (env GAS_LIMIT)")
    parser.add_argument("--estimate-gas", action="store_true", help="estimate deployment gas instead of the fixed limit")
    parser.add_argument("--verify-cached-code", action="store_true", help="require code at a cached address")
    parser.add_argument("--no-wait", action="store_true", help="do not wait for the setter receipt")
    parser.add_argument("--greeting", help="constructor greeting (env INITIAL_GREETING)")
    parser.add_argument("--new-greeting", help="greeting passed to the setter (env NEW_GREETING)")
    parser.add_argument("--log-file", help="also log to this file (env LOG_FILE)")
    parser.add_argument("--log-level", help="log level (env LOG_LEVEL)")
    return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "RPC_URL": args.rpc,
        "PRIVATE_KEY": args.private_key,
        "CHAIN_ID": args.chain_id,
        "CONTRACT_PATH": args.contract,
        "CONTRACT_NAME": args.contract_name,
        "CACHE_DIR": args.cache_dir,
        "SOLC_BINARY": args.solc,
        "SOLC_OPTIMIZE": _bool_flag(args.optimize),
        "GAS_LIMIT": args.gas_limit,
        "ESTIMATE_GAS": _bool_flag(args.estimate_gas),
        "VERIFY_CACHED_CODE": _bool_flag(args.verify_cached_code),
        "WAIT_FOR_RECEIPT": "false" if args.no_wait else None,
        "INITIAL_GREETING": args.greeting,
        "NEW_GREETING": args.new_greeting,
        "LOG_FILE": args.log_file,
        "LOG_LEVEL": args.log_level,
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(str(args.log_level or "INFO"))

    try:
        env = read_env(Path(args.env_file) if args.env_file else None)
        cfg = load_config(env, _overrides(args))
        configure_logging(cfg.log_level, cfg.log_file)
        result = run(cfg)
    except DeployerError as exc:
        logger.error("%s: %s", exc.kind, exc)
        return int(exc.exit_code)
    except Exception:
        logger.exception("unexpected failure")
        return EXIT_UNEXPECTED

    logger.info(
        "Done: %s %s at %s, %s tx %s, %s() = %r",
        result.decision.action,
        result.artifact.name,
        result.decision.address,
        cfg.set_method,
        result.set_tx_hash,
        cfg.get_method,
        result.view_result,
    )
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
