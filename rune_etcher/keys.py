"""Signing key material derived from a WIF."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bitcoinutils.keys import PrivateKey, PublicKey

from .config import ConfigurationError, configure_network

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyMaterial:
    """A keypair plus the 32-byte x-only key used as the Taproot internal key."""

    private_key: PrivateKey
    public_key: PublicKey
    x_only_pubkey: bytes

    @classmethod
    def from_wif(cls, wif: str, network: str) -> "KeyMaterial":
        configure_network(network)
        try:
            private_key = PrivateKey(wif)
        except (ValueError, TypeError) as exc:
            raise ConfigurationError(f"Invalid WIF private key for {network}") from exc
        public_key = private_key.get_public_key()
        x_only = bytes.fromhex(public_key.to_x_only_hex())
        logger.debug("Loaded signing key with x-only public key %s", x_only.hex())
        return cls(private_key=private_key, public_key=public_key, x_only_pubkey=x_only)

    def __repr__(self) -> str:
        return f"KeyMaterial(x_only_pubkey={self.x_only_pubkey.hex()!r})"
