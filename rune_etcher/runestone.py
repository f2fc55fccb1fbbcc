"""Runestone encoding and decoding for rune etchings.

A runestone is carried by an ``OP_RETURN OP_13`` output as a flat sequence of
LEB128 integers. Fields are emitted as ``tag value`` pairs, followed by an
optional body of edicts. The helpers here only model what an etching needs:
the etching itself, the pointer, a mint reference, and edicts for
completeness. Decoding is strict and raises :class:`RunestoneError` instead of
producing a cenotaph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

from .script_ops import MAX_SCRIPT_ELEMENT_SIZE, OP_RETURN, iter_script_ops
from .tx_builder import TransactionBuilder

logger = logging.getLogger(__name__)

MAGIC_NUMBER = 0x5D  # OP_13
MAX_U128 = (1 << 128) - 1
MAX_U32 = (1 << 32) - 1
MAX_U64 = (1 << 64) - 1
MAX_DIVISIBILITY = 38
SPACER_CHARACTERS = {".", "•"}


class RunestoneError(ValueError):
    """Raised when a runestone cannot be encoded or decoded."""


class Tag(IntEnum):
    BODY = 0
    DIVISIBILITY = 1
    FLAGS = 2
    SPACERS = 3
    RUNE = 4
    SYMBOL = 5
    PREMINE = 6
    CAP = 8
    AMOUNT = 10
    HEIGHT_START = 12
    HEIGHT_END = 14
    OFFSET_START = 16
    OFFSET_END = 18
    MINT = 20
    POINTER = 22
    CENOTAPH = 126
    NOP = 127


class Flag(IntEnum):
    ETCHING = 0
    TERMS = 1
    TURBO = 2

    @property
    def mask(self) -> int:
        return 1 << int(self)


def encode_varint(value: int) -> bytes:
    """Encode ``value`` as an unsigned LEB128 integer."""

    if value < 0 or value > MAX_U128:
        raise RunestoneError(f"varint out of range: {value}")
    out = bytearray()
    while value >> 7:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def decode_varint(buffer: bytes, offset: int = 0) -> Tuple[int, int]:
    """Decode one LEB128 integer, returning ``(value, next_offset)``."""

    value = 0
    for index in range(19):
        position = offset + index
        if position >= len(buffer):
            raise RunestoneError("truncated varint")
        byte = buffer[position]
        value |= (byte & 0x7F) << (7 * index)
        if value > MAX_U128:
            raise RunestoneError("varint overflows u128")
        if not byte & 0x80:
            return value, position + 1
    raise RunestoneError("overlong varint")


def rune_from_name(name: str) -> int:
    """Convert an unspaced rune name (``A``-``Z``) into its integer value."""

    if not name:
        raise RunestoneError("rune name must not be empty")
    value = 0
    for index, char in enumerate(name):
        if not "A" <= char <= "Z":
            raise RunestoneError(f"invalid rune character: {char!r}")
        if index > 0:
            value += 1
        value = value * 26 + (ord(char) - ord("A"))
        if value > MAX_U128:
            raise RunestoneError(f"rune name too long: {name}")
    return value


def rune_to_name(value: int) -> str:
    if value < 0 or value > MAX_U128:
        raise RunestoneError(f"rune value out of range: {value}")
    n = value + 1
    letters: List[str] = []
    while n > 0:
        n -= 1
        letters.append(chr(ord("A") + n % 26))
        n //= 26
    return "".join(reversed(letters))


def rune_commitment(value: int) -> bytes:
    """Return the little-endian, zero-trimmed commitment for a rune value.

    This is the buffer an inscription envelope carries under tag 13 so that
    the reveal commits to the etched name before it becomes public.
    """

    raw = value.to_bytes(16, "little")
    return raw.rstrip(b"\x00")


@dataclass(frozen=True)
class SpacedRune:
    """A rune value paired with its spacer bitfield."""

    rune: int
    spacers: int = 0

    @classmethod
    def from_string(cls, text: str) -> "SpacedRune":
        letters: List[str] = []
        spacers = 0
        for char in text:
            if char in SPACER_CHARACTERS:
                if not letters:
                    raise RunestoneError("leading spacer in rune name")
                flag = 1 << (len(letters) - 1)
                if spacers & flag:
                    raise RunestoneError("double spacer in rune name")
                spacers |= flag
                continue
            letters.append(char)
        if letters and spacers >> (len(letters) - 1):
            raise RunestoneError("trailing spacer in rune name")
        return cls(rune=rune_from_name("".join(letters)), spacers=spacers)

    @property
    def name(self) -> str:
        return rune_to_name(self.rune)

    def commitment(self) -> bytes:
        return rune_commitment(self.rune)

    def __str__(self) -> str:
        name = self.name
        parts: List[str] = []
        for index, char in enumerate(name):
            parts.append(char)
            if index < len(name) - 1 and self.spacers & (1 << index):
                parts.append("•")
        return "".join(parts)


@dataclass(frozen=True)
class Terms:
    """Open-mint terms attached to an etching."""

    amount: Optional[int] = None
    cap: Optional[int] = None
    height: Tuple[Optional[int], Optional[int]] = (None, None)
    offset: Tuple[Optional[int], Optional[int]] = (None, None)


@dataclass(frozen=True)
class Etching:
    """Parameters declaring a new rune."""

    rune: Optional[SpacedRune] = None
    divisibility: Optional[int] = None
    premine: Optional[int] = None
    symbol: Optional[str] = None
    terms: Optional[Terms] = None
    turbo: bool = False

    def __post_init__(self) -> None:
        if self.divisibility is not None and not 0 <= self.divisibility <= MAX_DIVISIBILITY:
            raise RunestoneError(f"divisibility must be between 0 and {MAX_DIVISIBILITY}")
        if self.symbol is not None and len(self.symbol) != 1:
            raise RunestoneError("symbol must be a single character")
        if self.premine is not None and not 0 <= self.premine <= MAX_U128:
            raise RunestoneError(f"premine out of range: {self.premine}")
        if self.supply() > MAX_U128:
            raise RunestoneError("premine plus cap times amount overflows u128")

    def supply(self) -> int:
        """Premine plus everything the open mint terms can ever add."""
        minted = 0
        if self.terms is not None:
            minted = (self.terms.cap or 0) * (self.terms.amount or 0)
        return (self.premine or 0) + minted


EtchingParams = Etching


@dataclass(frozen=True)
class RuneId:
    block: int
    tx: int


@dataclass(frozen=True)
class Edict:
    id: RuneId
    amount: int
    output: int


@dataclass(frozen=True)
class Runestone:
    """A decoded or to-be-encoded runestone."""

    etching: Optional[Etching] = None
    pointer: Optional[int] = None
    mint: Optional[RuneId] = None
    edicts: Tuple[Edict, ...] = field(default_factory=tuple)

    def encipher(self) -> bytes:
        """Return the runestone payload (without ``OP_RETURN OP_13``)."""

        payload = bytearray()

        def put(tag: Tag, value: Optional[int]) -> None:
            if value is None:
                return
            payload.extend(encode_varint(int(tag)))
            payload.extend(encode_varint(value))

        etching = self.etching
        if etching is not None:
            flags = Flag.ETCHING.mask
            if etching.terms is not None:
                flags |= Flag.TERMS.mask
            if etching.turbo:
                flags |= Flag.TURBO.mask
            put(Tag.FLAGS, flags)
            if etching.rune is not None:
                put(Tag.RUNE, etching.rune.rune)
            put(Tag.DIVISIBILITY, etching.divisibility)
            if etching.rune is not None and etching.rune.spacers:
                put(Tag.SPACERS, etching.rune.spacers)
            if etching.symbol is not None:
                put(Tag.SYMBOL, ord(etching.symbol))
            put(Tag.PREMINE, etching.premine)
            terms = etching.terms
            if terms is not None:
                put(Tag.AMOUNT, terms.amount)
                put(Tag.CAP, terms.cap)
                put(Tag.HEIGHT_START, terms.height[0])
                put(Tag.HEIGHT_END, terms.height[1])
                put(Tag.OFFSET_START, terms.offset[0])
                put(Tag.OFFSET_END, terms.offset[1])

        if self.mint is not None:
            put(Tag.MINT, self.mint.block)
            put(Tag.MINT, self.mint.tx)

        put(Tag.POINTER, self.pointer)

        if self.edicts:
            payload.extend(encode_varint(int(Tag.BODY)))
            previous = RuneId(0, 0)
            for edict in sorted(self.edicts, key=lambda e: (e.id.block, e.id.tx)):
                block_delta = edict.id.block - previous.block
                tx_delta = edict.id.tx if block_delta else edict.id.tx - previous.tx
                for value in (block_delta, tx_delta, edict.amount, edict.output):
                    payload.extend(encode_varint(value))
                previous = edict.id

        return bytes(payload)

    def commitment(self) -> bytes:
        if self.etching is None or self.etching.rune is None:
            raise RunestoneError("runestone does not etch a named rune")
        return self.etching.rune.commitment()

    @classmethod
    def decipher(cls, payload: bytes) -> "Runestone":
        """Parse a runestone payload back into a :class:`Runestone`."""

        integers: List[int] = []
        offset = 0
        while offset < len(payload):
            value, offset = decode_varint(payload, offset)
            integers.append(value)

        fields: Dict[int, List[int]] = {}
        edicts: List[Edict] = []
        index = 0
        while index < len(integers):
            tag = integers[index]
            if tag == Tag.BODY:
                edicts = _decode_edicts(integers[index + 1:])
                break
            if index + 1 >= len(integers):
                raise RunestoneError(f"tag {tag} has no value")
            fields.setdefault(tag, []).append(integers[index + 1])
            index += 2

        def take(tag: Tag, limit: int = MAX_U128) -> Optional[int]:
            values = fields.pop(int(tag), None)
            if not values:
                return None
            if len(values) > 1:
                raise RunestoneError(f"duplicate {tag.name.lower()} field")
            if values[0] > limit:
                raise RunestoneError(f"value for {tag.name.lower()} out of range")
            return values[0]

        flags = take(Tag.FLAGS) or 0
        etching: Optional[Etching] = None
        if flags & Flag.ETCHING.mask:
            rune_value = take(Tag.RUNE)
            spacers = take(Tag.SPACERS, MAX_U32) or 0
            symbol_value = take(Tag.SYMBOL, 0x10FFFF)
            terms = None
            if flags & Flag.TERMS.mask:
                terms = Terms(
                    amount=take(Tag.AMOUNT),
                    cap=take(Tag.CAP),
                    height=(take(Tag.HEIGHT_START, MAX_U64), take(Tag.HEIGHT_END, MAX_U64)),
                    offset=(take(Tag.OFFSET_START, MAX_U64), take(Tag.OFFSET_END, MAX_U64)),
                )
            etching = Etching(
                rune=SpacedRune(rune_value, spacers) if rune_value is not None else None,
                divisibility=take(Tag.DIVISIBILITY, MAX_DIVISIBILITY),
                premine=take(Tag.PREMINE),
                symbol=chr(symbol_value) if symbol_value is not None else None,
                terms=terms,
                turbo=bool(flags & Flag.TURBO.mask),
            )
            flags &= ~(Flag.ETCHING.mask | Flag.TERMS.mask | Flag.TURBO.mask)
        if flags:
            raise RunestoneError(f"unrecognized flags: {flags:#x}")

        mint = None
        mint_values = fields.pop(int(Tag.MINT), None)
        if mint_values:
            if len(mint_values) != 2:
                raise RunestoneError("mint requires block and tx values")
            mint = RuneId(mint_values[0], mint_values[1])

        pointer = take(Tag.POINTER, MAX_U32)

        for tag in fields:
            if tag % 2 == 0:
                raise RunestoneError(f"unrecognized even tag: {tag}")
            logger.debug("Ignoring unrecognized odd tag %s", tag)

        return cls(etching=etching, pointer=pointer, mint=mint, edicts=tuple(edicts))

    def to_script_bytes(self) -> bytes:
        """Return the full ``OP_RETURN OP_13 <payload>`` script."""

        return TransactionBuilder.build_data_output(MAGIC_NUMBER, self.encipher()).to_bytes()

    @classmethod
    def from_script(cls, script_bytes: bytes) -> "Runestone":
        """Decode a runestone from a complete output script."""

        try:
            ops = list(iter_script_ops(script_bytes))
        except ValueError as exc:
            raise RunestoneError(f"malformed runestone script: {exc}") from exc
        if len(ops) < 2 or ops[0][0] != OP_RETURN or ops[1][0] != MAGIC_NUMBER:
            raise RunestoneError("script is not an OP_RETURN OP_13 runestone")
        payload = bytearray()
        for opcode, data in ops[2:]:
            if data is None:
                raise RunestoneError(f"runestone payload contains opcode {opcode:#x}")
            if len(data) > MAX_SCRIPT_ELEMENT_SIZE:
                raise RunestoneError("runestone push exceeds 520 bytes")
            payload.extend(data)
        return cls.decipher(bytes(payload))


def _decode_edicts(integers: List[int]) -> List[Edict]:
    if len(integers) % 4:
        raise RunestoneError("trailing integers in edict body")
    edicts: List[Edict] = []
    previous = RuneId(0, 0)
    for start in range(0, len(integers), 4):
        block_delta, tx_delta, amount, output = integers[start:start + 4]
        block = previous.block + block_delta
        tx = tx_delta if block_delta else previous.tx + tx_delta
        rune_id = RuneId(block, tx)
        edicts.append(Edict(id=rune_id, amount=amount, output=output))
        previous = rune_id
    return edicts


def create_etching_runestone(etching: Etching, *, pointer: int | None = 0) -> Runestone:
    """Wrap an etching into a runestone whose premine lands on ``pointer``."""

    if etching.rune is None:
        raise RunestoneError("an etching must name its rune to be committed")
    runestone = Runestone(etching=etching, pointer=pointer)
    logger.debug(
        "Runestone for %s encodes to %d bytes", etching.rune, len(runestone.encipher())
    )
    return runestone
