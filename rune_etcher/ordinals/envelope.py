"""Ord-style inscription envelopes carrying a rune commitment.

The envelope is a tapscript leaf of the form::

    <xonly> OP_CHECKSIG
    OP_FALSE OP_IF
      "ord"
      0x01 <content-type>
      0x02 OP_0
      0x0d <commitment>
      OP_0 <content chunk> ...
    OP_ENDIF

Everything between ``OP_IF`` and ``OP_ENDIF`` is never executed, so the data
only has to satisfy push limits. The single key check in front keeps the
leaf spendable by the owner of ``xonly`` alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from bitcoinutils.script import Script

from ..script_ops import (
    MAX_SCRIPT_ELEMENT_SIZE,
    OP_0,
    OP_CHECKSIG,
    OP_ENDIF,
    OP_IF,
    iter_script_ops,
)

logger = logging.getLogger(__name__)

ORD_PROTOCOL_ID = b"ord"
CONTENT_TYPE_TAG = b"\x01"
POINTER_TAG = b"\x02"
RUNE_TAG = b"\x0d"


class ScriptConstructionError(ValueError):
    """Raised when an envelope operand is missing or too large to push."""


@dataclass(frozen=True)
class InscriptionEnvelope:
    """Fields recovered from an inscription leaf script."""

    x_only_pubkey: bytes
    content_type: str
    content: bytes
    commitment: bytes
    pointer: bytes | None = None


def chunk_content(content: bytes, size: int = MAX_SCRIPT_ELEMENT_SIZE) -> List[bytes]:
    """Split ``content`` into pushes of at most ``size`` bytes.

    Empty content still produces one empty chunk so the body push is present.
    """

    if not content:
        return [b""]
    return [content[start:start + size] for start in range(0, len(content), size)]


def build_inscription_script(
    x_only_pubkey: bytes,
    content_type: str,
    content: bytes,
    commitment: bytes,
) -> Script:
    """Compile the envelope leaf for ``x_only_pubkey``.

    Raises:
        ScriptConstructionError: If the key is not 32 bytes, or the content
            type or commitment is empty or exceeds a single push
    """

    if len(x_only_pubkey) != 32:
        raise ScriptConstructionError(
            f"x-only public key must be 32 bytes, got {len(x_only_pubkey)}"
        )
    content_type_bytes = content_type.encode("utf-8")
    if not content_type_bytes:
        raise ScriptConstructionError("content type must not be empty")
    if len(content_type_bytes) > MAX_SCRIPT_ELEMENT_SIZE:
        raise ScriptConstructionError(
            f"content type exceeds {MAX_SCRIPT_ELEMENT_SIZE} bytes"
        )
    if not commitment:
        raise ScriptConstructionError("rune commitment must not be empty")
    if len(commitment) > MAX_SCRIPT_ELEMENT_SIZE:
        raise ScriptConstructionError(
            f"rune commitment exceeds {MAX_SCRIPT_ELEMENT_SIZE} bytes"
        )

    tokens = [
        x_only_pubkey.hex(),
        "OP_CHECKSIG",
        "OP_0",
        "OP_IF",
        ORD_PROTOCOL_ID.hex(),
        CONTENT_TYPE_TAG.hex(),
        content_type_bytes.hex(),
        POINTER_TAG.hex(),
        "OP_0",
        RUNE_TAG.hex(),
        commitment.hex(),
        "OP_0",
    ]
    # an empty body is represented by the OP_0 separator alone
    if content:
        tokens.extend(chunk.hex() for chunk in chunk_content(content))
    tokens.append("OP_ENDIF")

    script = Script(tokens)
    logger.debug("Inscription script: %s", script.to_hex())
    return script


def parse_inscription_envelope(script_bytes: bytes) -> InscriptionEnvelope:
    """Recover the fields of an envelope produced by :func:`build_inscription_script`."""

    try:
        ops = list(iter_script_ops(script_bytes))
    except ValueError as exc:
        raise ScriptConstructionError(f"malformed envelope script: {exc}") from exc

    if (
        len(ops) < 5
        or ops[0][1] is None
        or len(ops[0][1]) != 32
        or ops[1][0] != OP_CHECKSIG
        or ops[2][0] != OP_0
        or ops[3][0] != OP_IF
        or ops[4][1] != ORD_PROTOCOL_ID
    ):
        raise ScriptConstructionError("script does not start with an ord envelope")
    if ops[-1][0] != OP_ENDIF:
        raise ScriptConstructionError("envelope is not terminated by OP_ENDIF")

    pubkey = ops[0][1]
    body_ops = ops[5:-1]
    fields = {}
    index = 0
    content_chunks: List[bytes] | None = None
    while index < len(body_ops):
        opcode, data = body_ops[index]
        if data is None:
            raise ScriptConstructionError(f"unexpected opcode {opcode:#x} in envelope")
        if data == b"":
            content_chunks = []
            for chunk_op, chunk in body_ops[index + 1:]:
                if chunk is None:
                    raise ScriptConstructionError(f"unexpected opcode {chunk_op:#x} in body")
                content_chunks.append(chunk)
            break
        if index + 1 >= len(body_ops) or body_ops[index + 1][1] is None:
            raise ScriptConstructionError(f"envelope tag {data.hex()} has no value")
        fields.setdefault(data, body_ops[index + 1][1])
        index += 2

    if CONTENT_TYPE_TAG not in fields:
        raise ScriptConstructionError("envelope has no content type")
    if RUNE_TAG not in fields:
        raise ScriptConstructionError("envelope has no rune commitment")

    try:
        content_type = fields[CONTENT_TYPE_TAG].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ScriptConstructionError("envelope content type is not valid UTF-8") from exc

    return InscriptionEnvelope(
        x_only_pubkey=pubkey,
        content_type=content_type,
        content=b"".join(content_chunks or []),
        commitment=fields[RUNE_TAG],
        pointer=fields.get(POINTER_TAG),
    )
