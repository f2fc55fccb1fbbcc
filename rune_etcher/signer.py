"""Sign, finalize and extract script-path reveal transactions."""

from __future__ import annotations

import logging

from bitcoinutils.script import Script
from bitcoinutils.transactions import Transaction, TxWitnessInput

from .keys import KeyMaterial
from .ordinals.taproot_builder import TapLeaf, verify_control_block
from .tx_builder import TransactionDraft

logger = logging.getLogger(__name__)

SCHNORR_SIGNATURE_SIZE = 64


class RevealBuildError(RuntimeError):
    """Raised when a reveal draft cannot be signed or finalized."""


def _prior_output_key(script_pubkey: bytes) -> bytes:
    if len(script_pubkey) != 34 or script_pubkey[:2] != b"\x51\x20":
        raise RevealBuildError("Spent output is not a witness v1 Taproot output")
    return script_pubkey[2:]


def sign_all_inputs(draft: TransactionDraft, keys: KeyMaterial) -> TransactionDraft:
    """Attach a BIP340 script-path signature to every input of ``draft``.

    Each signature commits to all prior output scripts and amounts plus the
    input's own leaf, using the default sighash.
    """

    if draft.finalized:
        raise RevealBuildError("Cannot sign a finalized draft")

    utxo_scripts = [
        Script(["OP_1", _prior_output_key(item.prior.script_pubkey).hex()])
        for item in draft.inputs
    ]
    amounts = [item.prior.value for item in draft.inputs]

    for index, item in enumerate(draft.inputs):
        if item.internal_key != keys.x_only_pubkey:
            raise RevealBuildError(
                f"Input {index} is committed to a different internal key than the signer"
            )
        try:
            signature = keys.private_key.sign_taproot_input(
                draft.transaction,
                index,
                utxo_scripts,
                amounts,
                script_path=True,
                tapleaf_script=item.leaf_script,
                tweak=False,
            )
        except (ValueError, TypeError) as exc:
            raise RevealBuildError(f"Signing input {index} failed: {exc}") from exc
        if len(bytes.fromhex(signature)) != SCHNORR_SIGNATURE_SIZE:
            raise RevealBuildError(f"Unexpected signature length for input {index}")
        draft.signatures[index] = signature
    logger.debug("Signed %d inputs", len(draft.inputs))
    return draft


def finalize_all_inputs(draft: TransactionDraft) -> TransactionDraft:
    """Verify each control block and install the ``[sig, script, cb]`` witness."""

    draft.ensure_mutable()
    witnesses = []
    for index, item in enumerate(draft.inputs):
        signature = draft.signatures[index]
        if signature is None:
            raise RevealBuildError(f"Input {index} has no signature")
        leaf = TapLeaf(item.leaf_script.to_bytes(), item.leaf_version)
        output_key = _prior_output_key(item.prior.script_pubkey)
        if not verify_control_block(item.control_block, leaf, output_key):
            raise RevealBuildError(
                f"Control block for input {index} does not commit to the spent output"
            )
        witnesses.append(
            TxWitnessInput([signature, item.leaf_script.to_hex(), item.control_block.hex()])
        )
        logger.debug("Control block for input %d: %s", index, item.control_block.hex())

    draft.transaction.witnesses = witnesses
    draft.finalized = True
    return draft


def extract_transaction(draft: TransactionDraft) -> Transaction:
    if not draft.finalized:
        raise RevealBuildError("Draft must be finalized before extraction")
    return draft.transaction
