"""Command line interface for the rune etcher.

Etching is split into two invocations. ``fund`` prints the commit address
and the amount to send there. Once that transaction has confirmed,
``reveal`` builds the transaction that spends it and prints its hex for
broadcast with any node or explorer.
"""

from __future__ import annotations

import argparse
import binascii
import json
import logging
import sys
from typing import Any, Sequence

from .config import ConfigurationError, load_config, parse_outpoint
from .ordinals.envelope import ScriptConstructionError, parse_inscription_envelope
from .ordinals.workflows import EtchingFlowError, build_reveal_transaction, derive_funding_plan
from .runestone import Runestone, RunestoneError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

REQUIRED_CONFIRMATIONS = 6


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rune-etcher", description="Etch a rune with a commit/reveal inscription"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    fund_parser = subparsers.add_parser(
        "fund", help="derive the commit address and the amount it must receive"
    )
    _add_config_args(fund_parser)

    reveal_parser = subparsers.add_parser(
        "reveal", help="build the reveal transaction spending a confirmed commit output"
    )
    _add_config_args(reveal_parser)
    reveal_parser.add_argument(
        "--outpoint",
        required=True,
        help="Commit output as <txid>:<vout>",
    )
    reveal_parser.add_argument(
        "--value",
        type=int,
        default=None,
        help="Value of the commit output in sats (default: the required funding)",
    )

    decode_parser = subparsers.add_parser(
        "decode", help="decode a runestone output script or an inscription envelope"
    )
    decode_parser.add_argument("script_hex", help="Script bytes as hex")
    decode_parser.add_argument(
        "--envelope",
        action="store_true",
        help="Treat the script as an inscription leaf instead of an OP_RETURN output",
    )
    decode_parser.add_argument(
        "--json", dest="as_json", action="store_true", help="Emit JSON output"
    )
    return parser


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML config (default: ~/.rune-etcher.yaml)",
    )
    parser.add_argument(
        "--json", dest="as_json", action="store_true", help="Emit JSON output"
    )


def _parse_script_hex(raw: str) -> bytes:
    cleaned = raw.strip().lower()
    if cleaned.startswith("0x"):
        cleaned = cleaned[2:]
    try:
        return binascii.unhexlify(cleaned)
    except (binascii.Error, ValueError) as exc:
        raise CLIError(f"invalid hex script: {raw}") from exc


def cmd_fund(args: argparse.Namespace) -> None:
    config = load_config(config_path=args.config)
    plan = derive_funding_plan(config)
    if getattr(args, "as_json", False):
        print(json.dumps(plan.summary(), indent=2))
        return
    print(f"- please fund this address {plan.address} {plan.required_funding} sat")
    print(
        f"- wait until >={REQUIRED_CONFIRMATIONS} block confirmation and then continue to step 2"
    )


def cmd_reveal(args: argparse.Namespace) -> None:
    if args.value is not None and args.value <= 0:
        raise CLIError("--value must be a positive number of sats")
    config = load_config(config_path=args.config)
    outpoint = parse_outpoint(args.outpoint)
    result = build_reveal_transaction(config, outpoint, funded_value=args.value)
    if getattr(args, "as_json", False):
        print(json.dumps(result.summary(), indent=2))
        return
    print(result.raw_tx)


def _runestone_summary(runestone: Runestone) -> dict[str, Any]:
    summary: dict[str, Any] = {"pointer": runestone.pointer}
    etching = runestone.etching
    if etching is not None:
        summary["etching"] = {
            "rune": str(etching.rune) if etching.rune is not None else None,
            "divisibility": etching.divisibility,
            "premine": etching.premine,
            "symbol": etching.symbol,
            "turbo": etching.turbo,
            "terms": None
            if etching.terms is None
            else {
                "amount": etching.terms.amount,
                "cap": etching.terms.cap,
                "height": list(etching.terms.height),
                "offset": list(etching.terms.offset),
            },
        }
        if etching.rune is not None:
            summary["commitment"] = etching.rune.commitment().hex()
    if runestone.mint is not None:
        summary["mint"] = f"{runestone.mint.block}:{runestone.mint.tx}"
    if runestone.edicts:
        summary["edicts"] = [
            {
                "id": f"{edict.id.block}:{edict.id.tx}",
                "amount": edict.amount,
                "output": edict.output,
            }
            for edict in runestone.edicts
        ]
    return summary


def cmd_decode(args: argparse.Namespace) -> None:
    script = _parse_script_hex(args.script_hex)
    if args.envelope:
        envelope = parse_inscription_envelope(script)
        summary: dict[str, Any] = {
            "x_only_pubkey": envelope.x_only_pubkey.hex(),
            "content_type": envelope.content_type,
            "content_length": len(envelope.content),
            "commitment": envelope.commitment.hex(),
        }
    else:
        summary = _runestone_summary(Runestone.from_script(script))

    if getattr(args, "as_json", False):
        print(json.dumps(summary, indent=2))
        return
    for key, value in summary.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, separators=(",", ":"))
        print(f"{key}: {value}")


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    try:
        if args.command == "fund":
            cmd_fund(args)
        elif args.command == "reveal":
            cmd_reveal(args)
        elif args.command == "decode":
            cmd_decode(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (
        CLIError,
        ConfigurationError,
        EtchingFlowError,
        RunestoneError,
        ScriptConstructionError,
    ) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
