from __future__ import annotations

import pytest

from rune_etcher.config import EtcherConfig
from rune_etcher.keys import KeyMaterial
from rune_etcher.runestone import Etching, SpacedRune, Terms

# Regtest-only key used by the bitcoin-utils Taproot examples.
TEST_WIF = "cRxebG1hY6vVgS9CSLNaEbEJaXkpZvc6nFeqqGT7v6gcW7MbzKNT"
RECEIVER_ADDRESS = "bcrt1p7xs0js658s3h7k80uweszex7esm4eyds62nhjrf8mpggtkrk9ztstqjx46"
CONTENT = b"I LOVE MY MOM"
CONTENT_TYPE = "text/plain;charset=utf-8"


@pytest.fixture
def etching() -> Etching:
    return Etching(
        rune=SpacedRune.from_string("WET.GEDANG.ENAKKK"),
        premine=1_000_000,
        symbol="R",
        terms=Terms(amount=1000, cap=100),
    )


@pytest.fixture
def etcher_config(etching: Etching) -> EtcherConfig:
    return EtcherConfig(
        network="regtest",
        wif=TEST_WIF,
        receiver_address=RECEIVER_ADDRESS,
        receiver_value=600,
        fee_rate_sat_vb=1,
        content_type=CONTENT_TYPE,
        content=CONTENT,
        etching=etching,
    )


@pytest.fixture
def keys() -> KeyMaterial:
    return KeyMaterial.from_wif(TEST_WIF, "regtest")
