from __future__ import annotations

import pytest

from rune_etcher.ordinals.envelope import (
    ScriptConstructionError,
    build_inscription_script,
    chunk_content,
    parse_inscription_envelope,
)

from conftest import CONTENT, CONTENT_TYPE

XONLY = bytes(range(32))
COMMITMENT = bytes.fromhex("9cf7933a616de63551")


def test_envelope_layout() -> None:
    script = build_inscription_script(XONLY, CONTENT_TYPE, CONTENT, COMMITMENT).to_bytes()

    expected = (
        b"\x20" + XONLY
        + b"\xac\x00\x63"
        + b"\x03ord"
        + b"\x01\x01" + b"\x18" + CONTENT_TYPE.encode()
        + b"\x01\x02\x00"
        + b"\x01\x0d" + b"\x09" + COMMITMENT
        + b"\x00"
        + b"\x0d" + CONTENT
        + b"\x68"
    )
    assert script == expected
    assert len(script) == 98


def test_envelope_is_deterministic() -> None:
    first = build_inscription_script(XONLY, CONTENT_TYPE, CONTENT, COMMITMENT)
    second = build_inscription_script(XONLY, CONTENT_TYPE, CONTENT, COMMITMENT)

    assert first.to_bytes() == second.to_bytes()


def test_parse_recovers_fields() -> None:
    script = build_inscription_script(XONLY, CONTENT_TYPE, CONTENT, COMMITMENT)

    envelope = parse_inscription_envelope(script.to_bytes())

    assert envelope.x_only_pubkey == XONLY
    assert envelope.content_type == CONTENT_TYPE
    assert envelope.content == CONTENT
    assert envelope.commitment == COMMITMENT
    assert envelope.pointer == b""


def test_large_content_is_split_into_520_byte_pushes() -> None:
    content = b"x" * 1200
    script = build_inscription_script(XONLY, CONTENT_TYPE, content, COMMITMENT)

    envelope = parse_inscription_envelope(script.to_bytes())

    assert envelope.content == content
    assert [len(chunk) for chunk in chunk_content(content)] == [520, 520, 160]


def test_empty_content_keeps_body_separator() -> None:
    script = build_inscription_script(XONLY, CONTENT_TYPE, b"", COMMITMENT).to_bytes()

    assert script.endswith(b"\x00\x68")
    assert parse_inscription_envelope(script).content == b""


def test_rejects_bad_pubkey_length() -> None:
    with pytest.raises(ScriptConstructionError):
        build_inscription_script(XONLY[:31], CONTENT_TYPE, CONTENT, COMMITMENT)


def test_rejects_oversized_or_empty_operands() -> None:
    with pytest.raises(ScriptConstructionError):
        build_inscription_script(XONLY, "", CONTENT, COMMITMENT)
    with pytest.raises(ScriptConstructionError):
        build_inscription_script(XONLY, "t" * 521, CONTENT, COMMITMENT)
    with pytest.raises(ScriptConstructionError):
        build_inscription_script(XONLY, CONTENT_TYPE, CONTENT, b"")
    with pytest.raises(ScriptConstructionError):
        build_inscription_script(XONLY, CONTENT_TYPE, CONTENT, b"\x01" * 521)


def test_parse_rejects_non_envelope() -> None:
    with pytest.raises(ScriptConstructionError):
        parse_inscription_envelope(bytes.fromhex("6a5d0100"))


def test_parse_rejects_undecodable_content_type() -> None:
    script = build_inscription_script(XONLY, CONTENT_TYPE, CONTENT, COMMITMENT).to_bytes()
    content_type_push = bytes([len(CONTENT_TYPE)]) + CONTENT_TYPE.encode()
    assert content_type_push in script
    script = script.replace(content_type_push, b"\x01\xff")

    with pytest.raises(ScriptConstructionError, match="UTF-8"):
        parse_inscription_envelope(script)
