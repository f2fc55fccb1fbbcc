"""Two-phase commit/reveal rune etching for Bitcoin test networks."""

from .config import ConfigurationError, EtcherConfig, Outpoint, load_config, parse_outpoint
from .keys import KeyMaterial
from .runestone import (
    Etching,
    EtchingParams,
    Runestone,
    RunestoneError,
    SpacedRune,
    Terms,
    create_etching_runestone,
)
from .ordinals.workflows import (
    EtchingFlowError,
    FundingPlan,
    RevealResult,
    build_reveal_transaction,
    derive_funding_plan,
    prepare_etching,
)

__all__ = [
    "ConfigurationError",
    "EtcherConfig",
    "Outpoint",
    "load_config",
    "parse_outpoint",
    "KeyMaterial",
    "Etching",
    "EtchingParams",
    "Runestone",
    "RunestoneError",
    "SpacedRune",
    "Terms",
    "create_etching_runestone",
    "EtchingFlowError",
    "FundingPlan",
    "RevealResult",
    "build_reveal_transaction",
    "derive_funding_plan",
    "prepare_etching",
]
