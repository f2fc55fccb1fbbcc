from __future__ import annotations

import pytest

from rune_etcher.config import EtcherConfig
from rune_etcher.fees import PLACEHOLDER_TXID, build_reveal_draft
from rune_etcher.keys import KeyMaterial
from rune_etcher.ordinals.workflows import EtchingContext, prepare_etching
from rune_etcher.signer import (
    RevealBuildError,
    extract_transaction,
    finalize_all_inputs,
    sign_all_inputs,
)
from rune_etcher.tx_builder import PriorOutput, TransactionDraft


def _draft(context: EtchingContext, control_block: bytes | None = None) -> TransactionDraft:
    config = context.config
    prior = PriorOutput(
        txid=PLACEHOLDER_TXID,
        vout=0,
        value=787,
        script_pubkey=context.payment.output_script,
    )
    return build_reveal_draft(
        network=config.network,
        prior=prior,
        leaf_script=context.leaf_script,
        control_block=control_block or context.control_block,
        keys=context.keys,
        receiver_address=config.receiver_address,
        receiver_value=config.receiver_value,
        runestone_script=context.runestone_script,
    )


def test_witness_is_signature_script_control_block(etcher_config: EtcherConfig) -> None:
    context = prepare_etching(etcher_config)
    draft = _draft(context)

    sign_all_inputs(draft, context.keys)
    finalize_all_inputs(draft)
    transaction = extract_transaction(draft)

    assert len(transaction.witnesses) == 1
    stack = transaction.witnesses[0].stack
    assert len(stack) == 3
    assert len(bytes.fromhex(stack[0])) == 64
    assert stack[1] == context.leaf_script.to_hex()
    assert stack[2] == context.control_block.hex()


def test_mismatched_control_block_is_fatal(etcher_config: EtcherConfig) -> None:
    context = prepare_etching(etcher_config)
    good = context.control_block
    flipped_parity = bytes([good[0] ^ 1]) + good[1:]
    draft = _draft(context, control_block=flipped_parity)

    sign_all_inputs(draft, context.keys)
    with pytest.raises(RevealBuildError):
        finalize_all_inputs(draft)
    assert not draft.finalized


def test_finalize_requires_signatures(etcher_config: EtcherConfig) -> None:
    draft = _draft(prepare_etching(etcher_config))

    with pytest.raises(RevealBuildError):
        finalize_all_inputs(draft)


def test_extract_requires_finalized_draft(etcher_config: EtcherConfig) -> None:
    context = prepare_etching(etcher_config)
    draft = _draft(context)
    sign_all_inputs(draft, context.keys)

    with pytest.raises(RevealBuildError):
        extract_transaction(draft)


def test_signing_with_a_foreign_key_is_rejected(etcher_config: EtcherConfig) -> None:
    context = prepare_etching(etcher_config)
    draft = _draft(context)
    impostor = KeyMaterial(
        private_key=context.keys.private_key,
        public_key=context.keys.public_key,
        x_only_pubkey=b"\x00" * 32,
    )

    with pytest.raises(RevealBuildError):
        sign_all_inputs(draft, impostor)


def test_finalized_draft_cannot_be_resigned(etcher_config: EtcherConfig) -> None:
    context = prepare_etching(etcher_config)
    draft = _draft(context)
    sign_all_inputs(draft, context.keys)
    finalize_all_inputs(draft)

    with pytest.raises(RevealBuildError):
        sign_all_inputs(draft, context.keys)
