"""Fee estimation for reveal transactions."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from bitcoinutils.script import Script

from .keys import KeyMaterial
from .signer import extract_transaction, finalize_all_inputs, sign_all_inputs
from .tx_builder import DraftError, PriorOutput, TransactionBuilder, TransactionDraft

logger = logging.getLogger(__name__)

# Stand-in prior output used to measure the reveal before the real one exists.
PLACEHOLDER_TXID = "e2aa2f0e1b49567e3c5e2f5985898657930e9f3ec1580b38429499e318c62b64"
PLACEHOLDER_VOUT = 0
PLACEHOLDER_VALUE_SATS = 10 * 100_000_000
DEFAULT_FEE_RATE_SAT_VB = 1
# receiver first, runestone data output second
RECEIVER_OUTPUT_INDEX = 0


def calculate_fee_sats(fee_rate_sat_vb: float, vsize: int) -> int:
    """Return the ceil'd fee in satoshis for the provided vsize."""

    return int(math.ceil(fee_rate_sat_vb * vsize))


@dataclass(frozen=True)
class FeeEstimate:
    """Measured size of a reveal and the funding it needs."""

    vsize: int
    fee_rate_sat_vb: float
    fee_sats: int
    receiver_value: int

    @property
    def required_funding(self) -> int:
        return self.fee_sats + self.receiver_value

    def with_fee_rate(self, fee_rate_sat_vb: float) -> "FeeEstimate":
        return FeeEstimate(
            vsize=self.vsize,
            fee_rate_sat_vb=fee_rate_sat_vb,
            fee_sats=calculate_fee_sats(fee_rate_sat_vb, self.vsize),
            receiver_value=self.receiver_value,
        )


def build_reveal_draft(
    *,
    network: str,
    prior: PriorOutput,
    leaf_script: Script,
    control_block: bytes,
    keys: KeyMaterial,
    receiver_address: str,
    receiver_value: int,
    runestone_script: Script,
) -> TransactionDraft:
    """Return a fresh two-output reveal draft spending ``prior``.

    Output 0 pays the receiver and output 1 carries the runestone.
    """

    builder = TransactionBuilder(network)
    builder.add_input(prior, leaf_script, control_block, keys.x_only_pubkey)
    builder.add_output(receiver_value, address=receiver_address)
    builder.add_output(0, script=runestone_script)
    return builder.build()


def estimate_reveal_fee(
    *,
    network: str,
    commit_script_pubkey: bytes,
    leaf_script: Script,
    control_block: bytes,
    keys: KeyMaterial,
    receiver_address: str,
    receiver_value: int,
    runestone_script: Script,
    fee_rate_sat_vb: float = DEFAULT_FEE_RATE_SAT_VB,
) -> FeeEstimate:
    """Measure the reveal by signing and finalizing a throwaway draft.

    The draft spends a placeholder outpoint but is otherwise identical to the
    real reveal, so its virtual size is exact. Signing and finalization
    errors propagate unchanged.
    """

    if receiver_value < 0:
        raise DraftError(f"Receiver value must be non-negative, got {receiver_value}")
    prior = PriorOutput(
        txid=PLACEHOLDER_TXID,
        vout=PLACEHOLDER_VOUT,
        value=PLACEHOLDER_VALUE_SATS,
        script_pubkey=commit_script_pubkey,
    )
    draft = build_reveal_draft(
        network=network,
        prior=prior,
        leaf_script=leaf_script,
        control_block=control_block,
        keys=keys,
        receiver_address=receiver_address,
        receiver_value=receiver_value,
        runestone_script=runestone_script,
    )
    sign_all_inputs(draft, keys)
    finalize_all_inputs(draft)
    vsize = extract_transaction(draft).get_vsize()

    estimate = FeeEstimate(
        vsize=vsize,
        fee_rate_sat_vb=fee_rate_sat_vb,
        fee_sats=calculate_fee_sats(fee_rate_sat_vb, vsize),
        receiver_value=receiver_value,
    )
    logger.info(
        "Measured reveal vsize %d vB; fee %d sats at %s sat/vB",
        vsize,
        estimate.fee_sats,
        fee_rate_sat_vb,
    )
    return estimate
