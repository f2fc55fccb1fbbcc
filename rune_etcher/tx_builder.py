"""Transaction builder for Taproot script-path reveals."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from bitcoinutils.keys import P2pkhAddress, P2shAddress, P2trAddress, P2wpkhAddress
from bitcoinutils.script import Script
from bitcoinutils.transactions import Transaction, TxInput, TxOutput

from .ordinals.taproot_builder import NETWORK_HRPS, TAPSCRIPT_LEAF_VERSION
from .script_ops import MAX_SCRIPT_ELEMENT_SIZE

logger = logging.getLogger(__name__)

TX_VERSION = 2
MAX_VOUT = 0xFFFFFFFF


class DraftError(RuntimeError):
    """Raised when a transaction draft cannot be assembled or modified."""


@dataclass(frozen=True)
class PriorOutput:
    """The output being spent: outpoint, value and locking script."""

    txid: str
    vout: int
    value: int
    script_pubkey: bytes


@dataclass(frozen=True)
class TapLeafInput:
    """Everything a script-path spend needs beyond the outpoint."""

    prior: PriorOutput
    leaf_script: Script
    control_block: bytes
    internal_key: bytes
    leaf_version: int = TAPSCRIPT_LEAF_VERSION


@dataclass
class TransactionDraft:
    """An unsigned transaction plus the data needed to sign and finalize it."""

    transaction: Transaction
    inputs: List[TapLeafInput]
    outputs: List[TxOutput]
    signatures: List[str | None] = field(default_factory=list)
    finalized: bool = False

    def __post_init__(self) -> None:
        if not self.signatures:
            self.signatures = [None] * len(self.inputs)

    def ensure_mutable(self) -> None:
        if self.finalized:
            raise DraftError("Transaction draft is finalized and can no longer be modified")


def address_to_script_pubkey(address: str, network: str) -> Script:
    """Return the locking script for ``address`` on ``network``.

    Decoding is left to ``bitcoinutils``, which validates the address against
    the network selected by :func:`rune_etcher.config.configure_network`.
    Witness v0 programs of either length map to ``OP_0 <program>``, so
    ``P2wpkhAddress`` covers P2WSH as well.
    """

    hrp = NETWORK_HRPS.get(network)
    if hrp is None:
        raise DraftError(f"Unsupported network: {network}")
    if address.lower().startswith(hrp + "1"):
        candidates = (P2trAddress, P2wpkhAddress)
    else:
        candidates = (P2pkhAddress, P2shAddress)

    for address_cls in candidates:
        try:
            return address_cls(address).to_script_pub_key()
        except (TypeError, ValueError):
            # TypeError means a witness version this class does not handle
            continue
    raise DraftError(f"Address {address} is not valid for network {network}")


class TransactionBuilder:
    """Assemble an ordered set of inputs and outputs into a draft.

    The builder never selects coins or adds change. Whatever the caller puts
    in is exactly what ends up in the transaction, in insertion order.
    """

    def __init__(self, network: str) -> None:
        self.network = network
        self._inputs: List[TapLeafInput] = []
        self._outputs: List[TxOutput] = []

    def add_input(
        self,
        prior: PriorOutput,
        leaf_script: Script,
        control_block: bytes,
        internal_key: bytes,
        leaf_version: int = TAPSCRIPT_LEAF_VERSION,
    ) -> "TransactionBuilder":
        """Append a script-path input spending ``prior``."""

        if not 0 <= prior.vout <= MAX_VOUT:
            raise DraftError(f"Invalid output index {prior.vout}")
        if prior.value < 0:
            raise DraftError(f"Invalid prior output value {prior.value}")
        self._inputs.append(
            TapLeafInput(
                prior=prior,
                leaf_script=leaf_script,
                control_block=control_block,
                internal_key=internal_key,
                leaf_version=leaf_version,
            )
        )
        logger.debug("Added input %s:%d (%d sats)", prior.txid, prior.vout, prior.value)
        return self

    def add_output(
        self,
        value: int,
        address: str | None = None,
        script: Script | None = None,
    ) -> "TransactionBuilder":
        """Append an output paying ``value`` to exactly one of address or script."""

        if (address is None) == (script is None):
            raise DraftError("Provide exactly one of address or script for an output")
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise DraftError(f"Output value must be a non-negative integer, got {value!r}")
        if script is None:
            script = address_to_script_pubkey(address, self.network)
        self._outputs.append(TxOutput(value, script))
        return self

    @staticmethod
    def build_data_output(protocol_tag: int, payload: bytes) -> Script:
        """Return ``OP_RETURN <tag> <payload...>`` as a script.

        ``protocol_tag`` is a small-integer opcode (``OP_1`` to ``OP_16``).
        The payload is split into pushes no larger than the element limit.
        """

        if not 0x51 <= protocol_tag <= 0x60:
            raise DraftError(f"Protocol tag must be OP_1..OP_16, got {protocol_tag:#x}")
        tokens = ["OP_RETURN", f"OP_{protocol_tag - 0x50}"]
        for start in range(0, len(payload), MAX_SCRIPT_ELEMENT_SIZE):
            tokens.append(payload[start:start + MAX_SCRIPT_ELEMENT_SIZE].hex())
        return Script(tokens)

    def add_data_output(self, payload: bytes, protocol_tag: int = 0x5D) -> "TransactionBuilder":
        return self.add_output(0, script=self.build_data_output(protocol_tag, payload))

    def build(self) -> TransactionDraft:
        """Freeze the collected inputs and outputs into a :class:`TransactionDraft`."""

        if not self._inputs:
            raise DraftError("A transaction needs at least one input")
        if not self._outputs:
            raise DraftError("A transaction needs at least one output")

        tx_inputs = [TxInput(item.prior.txid, item.prior.vout) for item in self._inputs]
        transaction = Transaction(
            tx_inputs,
            list(self._outputs),
            version=TX_VERSION.to_bytes(4, "little"),
            has_segwit=True,
        )
        logger.debug(
            "Built draft with %d inputs and %d outputs", len(self._inputs), len(self._outputs)
        )
        return TransactionDraft(
            transaction=transaction,
            inputs=list(self._inputs),
            outputs=list(self._outputs),
        )
