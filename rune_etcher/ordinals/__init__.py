"""Inscription envelopes and Taproot commitments for rune etchings.

The workflows in :mod:`rune_etcher.ordinals.workflows` tie these pieces
together with fee estimation and signing; import them from there.
"""

from rune_etcher.ordinals.envelope import (
    InscriptionEnvelope,
    ScriptConstructionError,
    build_inscription_script,
    parse_inscription_envelope,
)
from rune_etcher.ordinals.taproot_builder import (
    TapLeaf,
    TaprootPayment,
    derive_taproot_payment,
    verify_control_block,
)

__all__ = [
    "InscriptionEnvelope",
    "ScriptConstructionError",
    "build_inscription_script",
    "parse_inscription_envelope",
    "TapLeaf",
    "TaprootPayment",
    "derive_taproot_payment",
    "verify_control_block",
]
