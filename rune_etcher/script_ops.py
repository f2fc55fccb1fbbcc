"""Minimal script reader shared by the envelope and runestone parsers."""

from __future__ import annotations

from typing import Iterator, Optional, Tuple

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_1 = 0x51
OP_RETURN = 0x6A
OP_IF = 0x63
OP_ENDIF = 0x68
OP_CHECKSIG = 0xAC

# Consensus limit for a single pushed element.
MAX_SCRIPT_ELEMENT_SIZE = 520


def iter_script_ops(script: bytes) -> Iterator[Tuple[int, Optional[bytes]]]:
    """Yield ``(opcode, data)`` pairs from raw script bytes.

    ``data`` is the pushed payload for push opcodes (``b""`` for ``OP_0``) and
    ``None`` for every other opcode. Truncated pushes raise ``ValueError``.
    """

    offset = 0
    while offset < len(script):
        opcode = script[offset]
        offset += 1
        if opcode == OP_0:
            yield opcode, b""
            continue
        if opcode < OP_PUSHDATA1:
            length = opcode
        elif opcode == OP_PUSHDATA1:
            length = _read_length(script, offset, 1)
            offset += 1
        elif opcode == OP_PUSHDATA2:
            length = _read_length(script, offset, 2)
            offset += 2
        elif opcode == OP_PUSHDATA4:
            length = _read_length(script, offset, 4)
            offset += 4
        else:
            yield opcode, None
            continue
        end = offset + length
        if end > len(script):
            raise ValueError(f"push of {length} bytes runs past end of script")
        yield opcode, script[offset:end]
        offset = end


def _read_length(script: bytes, offset: int, width: int) -> int:
    if offset + width > len(script):
        raise ValueError("truncated push length")
    return int.from_bytes(script[offset:offset + width], "little")
