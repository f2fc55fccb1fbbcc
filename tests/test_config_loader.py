from pathlib import Path

import pytest

from rune_etcher.config import (
    ConfigurationError,
    EtcherConfig,
    load_config,
    parse_outpoint,
    validate_network,
)

from conftest import RECEIVER_ADDRESS, TEST_WIF


def _write_config(tmp_path: Path, body: str) -> Path:
    config_path = tmp_path / "etcher.yaml"
    config_path.write_text(body)
    return config_path


BASE_YAML = f"""
network: regtest
key:
  wif: {TEST_WIF}
receiver:
  address: {RECEIVER_ADDRESS}
  value: 600
inscription:
  content_type: text/plain;charset=utf-8
  content: I LOVE MY MOM
etching:
  rune: WET.GEDANG.ENAKKK
  premine: 1000000
  symbol: R
  terms:
    amount: 1000
    cap: 100
"""


def test_load_config_reads_yaml(tmp_path: Path) -> None:
    config = load_config(config_path=_write_config(tmp_path, BASE_YAML), env={})

    assert isinstance(config, EtcherConfig)
    assert config.network == "regtest"
    assert config.wif == TEST_WIF
    assert config.receiver_address == RECEIVER_ADDRESS
    assert config.receiver_value == 600
    assert config.fee_rate_sat_vb == 1
    assert config.content == b"I LOVE MY MOM"
    assert str(config.etching.rune) == "WET•GEDANG•ENAKKK"
    assert config.etching.premine == 1_000_000
    assert config.etching.terms.cap == 100
    assert config.etching.divisibility is None


def test_environment_overrides_yaml(tmp_path: Path) -> None:
    env_map = {
        "RUNE_ETCHER_NETWORK": "testnet",
        "RUNE_ETCHER_RECEIVER_VALUE": "1000",
        "RUNE_ETCHER_FEE_RATE": "3",
    }

    config = load_config(config_path=_write_config(tmp_path, BASE_YAML), env=env_map)

    assert config.network == "testnet"
    assert config.receiver_value == 1000
    assert config.fee_rate_sat_vb == 3


def test_overrides_win_over_environment(tmp_path: Path) -> None:
    config = load_config(
        config_path=_write_config(tmp_path, BASE_YAML),
        env={"RUNE_ETCHER_RECEIVER_VALUE": "1000"},
        overrides={"receiver_value": 700},
    )

    assert config.receiver_value == 700


def test_wif_can_come_from_environment_only(tmp_path: Path) -> None:
    body = BASE_YAML.replace(f"key:\n  wif: {TEST_WIF}\n", "")

    config = load_config(
        config_path=_write_config(tmp_path, body), env={"RUNE_ETCHER_WIF": TEST_WIF}
    )

    assert config.wif == TEST_WIF
    assert TEST_WIF not in repr(config)


def test_missing_wif_is_rejected(tmp_path: Path) -> None:
    body = BASE_YAML.replace(f"key:\n  wif: {TEST_WIF}\n", "")

    with pytest.raises(ConfigurationError):
        load_config(config_path=_write_config(tmp_path, body), env={})


def test_content_file_is_resolved_relative_to_config(tmp_path: Path) -> None:
    (tmp_path / "payload.bin").write_bytes(b"\x00\x01binary")
    body = BASE_YAML.replace("  content: I LOVE MY MOM", "  content_file: payload.bin")

    config = load_config(config_path=_write_config(tmp_path, body), env={})

    assert config.content == b"\x00\x01binary"


def test_explicit_config_path_must_exist(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(config_path=tmp_path / "missing.yaml", env={})


def test_default_config_path_is_optional(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("rune_etcher.config.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")

    with pytest.raises(ConfigurationError, match="signing key"):
        load_config(env={})


@pytest.mark.parametrize("network", ["mainnet", "bitcoin", "dogecoin"])
def test_network_guard(network: str) -> None:
    with pytest.raises(ConfigurationError):
        validate_network(network)


def test_mainnet_in_yaml_is_rejected(tmp_path: Path) -> None:
    body = BASE_YAML.replace("network: regtest", "network: mainnet")

    with pytest.raises(ConfigurationError):
        load_config(config_path=_write_config(tmp_path, body), env={})


def test_invalid_rune_is_a_configuration_error(tmp_path: Path) -> None:
    body = BASE_YAML.replace("rune: WET.GEDANG.ENAKKK", "rune: wet..gedang")

    with pytest.raises(ConfigurationError):
        load_config(config_path=_write_config(tmp_path, body), env={})


def test_invalid_receiver_value_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(
            config_path=_write_config(tmp_path, BASE_YAML),
            env={"RUNE_ETCHER_RECEIVER_VALUE": "lots"},
        )


def test_parse_outpoint() -> None:
    outpoint = parse_outpoint(
        "E2AA2F0E1B49567E3C5E2F5985898657930E9F3EC1580B38429499E318C62B64:1"
    )

    assert outpoint.txid == "e2aa2f0e1b49567e3c5e2f5985898657930e9f3ec1580b38429499e318c62b64"
    assert outpoint.vout == 1
    assert str(outpoint).endswith(":1")


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "abcd:0",
        "e2aa2f0e1b49567e3c5e2f5985898657930e9f3ec1580b38429499e318c62b64",
        "e2aa2f0e1b49567e3c5e2f5985898657930e9f3ec1580b38429499e318c62b64:-1",
        "e2aa2f0e1b49567e3c5e2f5985898657930e9f3ec1580b38429499e318c62b64:x",
        "e2aa2f0e1b49567e3c5e2f5985898657930e9f3ec1580b38429499e318c62b64:4294967296",
    ],
)
def test_parse_outpoint_rejects_malformed(raw: str) -> None:
    with pytest.raises(ConfigurationError):
        parse_outpoint(raw)


def test_parse_outpoint_accepts_largest_output_index() -> None:
    outpoint = parse_outpoint(
        "e2aa2f0e1b49567e3c5e2f5985898657930e9f3ec1580b38429499e318c62b64:4294967295"
    )

    assert outpoint.vout == 0xFFFFFFFF


def test_zero_pointer_is_accepted(tmp_path: Path) -> None:
    body = BASE_YAML + "  pointer: 0\n"

    config = load_config(config_path=_write_config(tmp_path, body), env={})

    assert str(config.etching.rune) == "WET•GEDANG•ENAKKK"


@pytest.mark.parametrize("pointer", ["1", "-1", "4294967296"])
def test_pointer_other_than_receiver_is_rejected(tmp_path: Path, pointer: str) -> None:
    body = BASE_YAML + f"  pointer: {pointer}\n"

    with pytest.raises(ConfigurationError, match="pointer"):
        load_config(config_path=_write_config(tmp_path, body), env={})
