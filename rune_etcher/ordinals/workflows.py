"""Commit and reveal workflows for rune etchings.

Both operations start from the same configuration and recompute the same
deterministic context: key, runestone, commitment, envelope leaf and commit
address. Nothing is persisted between the funding step and the reveal step,
so the reveal must be run with the configuration that produced the address.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from bitcoinutils.script import Script

from .envelope import ScriptConstructionError, build_inscription_script, parse_inscription_envelope
from .taproot_builder import TapLeaf, TaprootPayment, derive_taproot_payment
from ..config import EtcherConfig, Outpoint
from ..fees import RECEIVER_OUTPUT_INDEX, FeeEstimate, build_reveal_draft, estimate_reveal_fee
from ..keys import KeyMaterial
from ..runestone import MAGIC_NUMBER, Runestone, RunestoneError, create_etching_runestone
from ..signer import RevealBuildError, extract_transaction, finalize_all_inputs, sign_all_inputs
from ..tx_builder import DraftError, PriorOutput, TransactionBuilder, address_to_script_pubkey

logger = logging.getLogger(__name__)


class EtchingFlowError(RuntimeError):
    """Raised when an etching cannot be prepared, funded or revealed."""


@dataclass(frozen=True)
class EtchingContext:
    """Deterministic artefacts shared by the funding and reveal steps."""

    config: EtcherConfig
    keys: KeyMaterial
    runestone: Runestone
    runestone_script: Script
    commitment: bytes
    leaf_script: Script
    payment: TaprootPayment

    @property
    def control_block(self) -> bytes:
        return self.payment.control_block()

    @property
    def address(self) -> str:
        return self.payment.address


@dataclass(frozen=True)
class FundingPlan:
    """Where to send funds and how much, for phase one."""

    address: str
    required_funding: int
    estimate: FeeEstimate
    commitment: bytes
    leaf_script_hex: str
    control_block_hex: str
    rune: str

    def summary(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "required_funding_sats": self.required_funding,
            "vsize": self.estimate.vsize,
            "fee_rate_sat_vb": self.estimate.fee_rate_sat_vb,
            "fee_sats": self.estimate.fee_sats,
            "receiver_value_sats": self.estimate.receiver_value,
            "rune": self.rune,
            "commitment": self.commitment.hex(),
            "leaf_script": self.leaf_script_hex,
            "control_block": self.control_block_hex,
        }


@dataclass(frozen=True)
class RevealResult:
    """A finalized reveal transaction ready for broadcast."""

    raw_tx: str
    txid: str
    vsize: int
    fee_sats: int
    input_value: int
    outpoint: Outpoint
    rune: str

    def summary(self) -> dict[str, Any]:
        return {
            "txid": self.txid,
            "outpoint": str(self.outpoint),
            "input_value_sats": self.input_value,
            "vsize": self.vsize,
            "fee_sats": self.fee_sats,
            "rune": self.rune,
            "hex": self.raw_tx,
        }


def prepare_etching(config: EtcherConfig) -> EtchingContext:
    """Derive the key, runestone, envelope leaf and commit output for ``config``."""

    keys = KeyMaterial.from_wif(config.wif, config.network)
    try:
        address_to_script_pubkey(config.receiver_address, config.network)
        runestone = create_etching_runestone(config.etching, pointer=RECEIVER_OUTPUT_INDEX)
        runestone_script = TransactionBuilder.build_data_output(MAGIC_NUMBER, runestone.encipher())
        commitment = runestone.commitment()
        leaf_script = build_inscription_script(
            keys.x_only_pubkey, config.content_type, config.content, commitment
        )
    except (DraftError, RunestoneError, ScriptConstructionError) as exc:
        raise EtchingFlowError(f"Could not prepare etching: {exc}") from exc

    envelope = parse_inscription_envelope(leaf_script.to_bytes())
    if Runestone.from_script(runestone_script.to_bytes()).commitment() != envelope.commitment:
        raise EtchingFlowError("Envelope commitment does not match the runestone's rune")

    payment = derive_taproot_payment(
        keys.x_only_pubkey, TapLeaf(leaf_script.to_bytes()), config.network
    )
    logger.info("Derived commit address %s for rune %s", payment.address, config.etching.rune)
    return EtchingContext(
        config=config,
        keys=keys,
        runestone=runestone,
        runestone_script=runestone_script,
        commitment=commitment,
        leaf_script=leaf_script,
        payment=payment,
    )


def _estimate(context: EtchingContext) -> FeeEstimate:
    config = context.config
    try:
        return estimate_reveal_fee(
            network=config.network,
            commit_script_pubkey=context.payment.output_script,
            leaf_script=context.leaf_script,
            control_block=context.control_block,
            keys=context.keys,
            receiver_address=config.receiver_address,
            receiver_value=config.receiver_value,
            runestone_script=context.runestone_script,
            fee_rate_sat_vb=config.fee_rate_sat_vb,
        )
    except (DraftError, RevealBuildError) as exc:
        raise EtchingFlowError(f"Could not measure the reveal transaction: {exc}") from exc


def derive_funding_plan(config: EtcherConfig) -> FundingPlan:
    """Phase one: compute the commit address and the exact amount to send there."""

    context = prepare_etching(config)
    estimate = _estimate(context)
    return FundingPlan(
        address=context.address,
        required_funding=estimate.required_funding,
        estimate=estimate,
        commitment=context.commitment,
        leaf_script_hex=context.leaf_script.to_hex(),
        control_block_hex=context.control_block.hex(),
        rune=str(config.etching.rune),
    )


def build_reveal_transaction(
    config: EtcherConfig,
    outpoint: Outpoint,
    *,
    funded_value: int | None = None,
) -> RevealResult:
    """Phase two: spend the confirmed commit output and return the reveal.

    ``funded_value`` is the value of the commit output. It defaults to the
    required funding computed in phase one, which is what an operator who
    followed the funding instructions will have sent.
    """

    context = prepare_etching(config)
    estimate = _estimate(context)
    value = estimate.required_funding if funded_value is None else funded_value
    if value < estimate.required_funding:
        raise EtchingFlowError(
            f"Commit output holds {value} sats but the reveal needs {estimate.required_funding} sats"
        )

    prior = PriorOutput(
        txid=outpoint.txid,
        vout=outpoint.vout,
        value=value,
        script_pubkey=context.payment.output_script,
    )
    try:
        draft = build_reveal_draft(
            network=config.network,
            prior=prior,
            leaf_script=context.leaf_script,
            control_block=context.control_block,
            keys=context.keys,
            receiver_address=config.receiver_address,
            receiver_value=config.receiver_value,
            runestone_script=context.runestone_script,
        )
        sign_all_inputs(draft, context.keys)
        finalize_all_inputs(draft)
        transaction = extract_transaction(draft)
    except (DraftError, RevealBuildError) as exc:
        raise EtchingFlowError(f"Could not build the reveal transaction: {exc}") from exc

    result = RevealResult(
        raw_tx=transaction.serialize(),
        txid=transaction.get_txid(),
        vsize=transaction.get_vsize(),
        fee_sats=value - config.receiver_value,
        input_value=value,
        outpoint=outpoint,
        rune=str(config.etching.rune),
    )
    logger.info("Finalized reveal %s (%d vB, fee %d sats)", result.txid, result.vsize, result.fee_sats)
    return result
