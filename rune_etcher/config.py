"""Shared configuration loader for rune-etcher."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from bitcoinutils.setup import setup

from .runestone import Etching, RunestoneError, SpacedRune, Terms

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".rune-etcher.yaml"
DEFAULT_NETWORK = "regtest"
DEFAULT_RECEIVER_VALUE = 600
DEFAULT_FEE_RATE_SAT_VB = 1
DEFAULT_CONTENT_TYPE = "text/plain;charset=utf-8"

SUPPORTED_NETWORKS = ("regtest", "testnet", "signet")
MAX_VOUT = 0xFFFFFFFF
# bitcoin-utils shares address prefixes between testnet and signet
_BITCOINUTILS_NETWORKS = {"regtest": "regtest", "testnet": "testnet", "signet": "testnet"}

_TXID_RE = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class Outpoint:
    txid: str
    vout: int

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class EtcherConfig:
    """Everything needed to derive the commit address and build the reveal."""

    network: str
    wif: str
    receiver_address: str
    receiver_value: int
    fee_rate_sat_vb: float
    content_type: str
    content: bytes
    etching: Etching

    def __repr__(self) -> str:
        return (
            f"EtcherConfig(network={self.network!r}, wif='***', "
            f"receiver_address={self.receiver_address!r}, receiver_value={self.receiver_value}, "
            f"fee_rate_sat_vb={self.fee_rate_sat_vb}, rune={str(self.etching.rune)!r})"
        )


def validate_network(network: str) -> str:
    normalized = (network or "").strip().lower()
    if normalized in {"mainnet", "bitcoin", "main"}:
        raise ConfigurationError("Mainnet is not supported; use regtest, testnet or signet")
    if normalized not in SUPPORTED_NETWORKS:
        raise ConfigurationError(
            f"Unknown network {network!r}; expected one of {', '.join(SUPPORTED_NETWORKS)}"
        )
    return normalized


def configure_network(network: str) -> str:
    """Select ``network`` in bitcoin-utils' process-wide setup and return it."""

    normalized = validate_network(network)
    setup(_BITCOINUTILS_NETWORKS[normalized])
    logger.debug("bitcoin-utils configured for %s", normalized)
    return normalized


def parse_outpoint(raw: str) -> Outpoint:
    """Parse ``txid:vout`` into an :class:`Outpoint`."""

    txid, sep, vout_text = (raw or "").strip().rpartition(":")
    if not sep or not _TXID_RE.match(txid):
        raise ConfigurationError(f"Outpoint must look like <64 hex txid>:<vout>, got {raw!r}")
    try:
        vout = int(vout_text)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid output index in outpoint {raw!r}") from exc
    if not 0 <= vout <= MAX_VOUT:
        raise ConfigurationError(f"Output index must be between 0 and {MAX_VOUT}, got {vout}")
    return Outpoint(txid=txid.lower(), vout=vout)


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML mapping")
    return loaded


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return None


def _coerce_int(raw: Any, *, source: str, minimum: int = 0) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ConfigurationError(f"Invalid integer in {source}: {raw}")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid integer in {source}: {raw}") from exc
    if value < minimum:
        raise ConfigurationError(f"{source} must be at least {minimum}, got {value}")
    return value


def _coerce_rate(raw: Any, *, source: str) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid fee rate in {source}: {raw}") from exc
    if value <= 0:
        raise ConfigurationError(f"Fee rate in {source} must be positive, got {value}")
    return value


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _section(config: Mapping[str, Any], name: str, path: Path) -> dict[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected '{name}' to be a mapping in {path}")
    return section


def _pair(raw: Any, *, source: str) -> tuple[int | None, int | None]:
    if raw is None:
        return None, None
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ConfigurationError(f"{source} must be a [start, end] pair")
    return (
        _coerce_int(raw[0], source=f"{source}[0]"),
        _coerce_int(raw[1], source=f"{source}[1]"),
    )


def _build_etching(section: Mapping[str, Any], path: Path) -> Etching:
    rune_name = section.get("rune")
    if not rune_name:
        raise ConfigurationError(f"etching.rune is required in {path}")

    terms_section = section.get("terms")
    terms = None
    if terms_section is not None:
        if not isinstance(terms_section, dict):
            raise ConfigurationError(f"Expected 'etching.terms' to be a mapping in {path}")
        terms = Terms(
            amount=_coerce_int(terms_section.get("amount"), source="etching.terms.amount"),
            cap=_coerce_int(terms_section.get("cap"), source="etching.terms.cap"),
            height=_pair(terms_section.get("height"), source="etching.terms.height"),
            offset=_pair(terms_section.get("offset"), source="etching.terms.offset"),
        )

    symbol = section.get("symbol")
    try:
        return Etching(
            rune=SpacedRune.from_string(str(rune_name).strip()),
            divisibility=_coerce_int(section.get("divisibility"), source="etching.divisibility"),
            premine=_coerce_int(section.get("premine"), source="etching.premine"),
            symbol=str(symbol) if symbol is not None else None,
            terms=terms,
            turbo=bool(_coerce_bool(section.get("turbo"))),
        )
    except RunestoneError as exc:
        raise ConfigurationError(f"Invalid etching in {path}: {exc}") from exc


def _load_content(section: Mapping[str, Any], path: Path) -> bytes:
    content_file = section.get("content_file")
    if content_file is not None:
        content_path = Path(str(content_file)).expanduser()
        if not content_path.is_absolute():
            content_path = path.parent / content_path
        if not content_path.exists():
            raise ConfigurationError(f"Inscription content file not found: {content_path}")
        return content_path.read_bytes()
    content = section.get("content", "")
    if isinstance(content, bytes):
        return content
    return str(content).encode("utf-8")


def load_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> EtcherConfig:
    """Load etching configuration from optional YAML and environment variables.

    Precedence is ``overrides`` > environment > file > defaults. The signing
    key is only ever read from configuration or ``RUNE_ETCHER_WIF``.
    """

    env_map = os.environ if env is None else env
    path = Path(config_path).expanduser() if config_path is not None else DEFAULT_CONFIG_PATH
    file_config = _load_config_file(path, required=config_path is not None)
    override_map = dict(overrides or {})

    key_section = _section(file_config, "key", path)
    receiver_section = _section(file_config, "receiver", path)
    inscription_section = _section(file_config, "inscription", path)
    etching_section = _section(file_config, "etching", path)

    network = validate_network(
        _first_value(
            override_map.get("network"),
            env_map.get("RUNE_ETCHER_NETWORK"),
            file_config.get("network"),
            default=DEFAULT_NETWORK,
        )
    )

    wif = _first_value(override_map.get("wif"), env_map.get("RUNE_ETCHER_WIF"), key_section.get("wif"))
    if not wif:
        raise ConfigurationError(
            "A signing key must be provided via RUNE_ETCHER_WIF or key.wif in the config file"
        )

    receiver_address = _first_value(
        override_map.get("receiver_address"),
        env_map.get("RUNE_ETCHER_RECEIVER"),
        receiver_section.get("address"),
    )
    if not receiver_address:
        raise ConfigurationError(
            "A receiver address must be provided via RUNE_ETCHER_RECEIVER or receiver.address"
        )

    receiver_value = _first_value(
        _coerce_int(override_map.get("receiver_value"), source="overrides"),
        _coerce_int(env_map.get("RUNE_ETCHER_RECEIVER_VALUE"), source="environment"),
        _coerce_int(receiver_section.get("value"), source=f"{path} receiver.value"),
        default=DEFAULT_RECEIVER_VALUE,
    )
    fee_rate = _first_value(
        _coerce_rate(override_map.get("fee_rate_sat_vb"), source="overrides"),
        _coerce_rate(env_map.get("RUNE_ETCHER_FEE_RATE"), source="environment"),
        _coerce_rate(file_config.get("fee_rate_sat_vb"), source=str(path)),
        default=DEFAULT_FEE_RATE_SAT_VB,
    )

    content_type = str(inscription_section.get("content_type") or DEFAULT_CONTENT_TYPE)
    content = _load_content(inscription_section, path)
    etching = _build_etching(etching_section, path)
    pointer = _coerce_int(etching_section.get("pointer"), source=f"{path} etching.pointer")
    if pointer not in (None, 0):
        raise ConfigurationError(f"etching.pointer must be 0 (the receiver output), got {pointer}")

    config = EtcherConfig(
        network=network,
        wif=str(wif).strip(),
        receiver_address=str(receiver_address).strip(),
        receiver_value=receiver_value,
        fee_rate_sat_vb=fee_rate,
        content_type=content_type,
        content=content,
        etching=etching,
    )
    logger.debug("Loaded configuration %r", config)
    return config
