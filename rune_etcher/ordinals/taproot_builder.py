"""BIP341 Taproot derivation for single-leaf inscription commitments.

This module implements the Taproot primitives needed to turn an internal key
and one tapscript leaf into a commit address and, later, a control block for
the script-path reveal. It handles tagged hashing, key tweaking, control block
construction and verification, and bech32/bech32m address encoding.

All operations follow BIP340 (Schnorr), BIP341 (Taproot), and BIP350 (bech32m).
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Tuple

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.backends import default_backend

logger = logging.getLogger(__name__)

# BIP340/341 constants
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_FIELD_SIZE = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F

# BIP342 tapscript leaf version
TAPSCRIPT_LEAF_VERSION = 0xC0
TAPROOT_LEAF_MASK = 0xFE

NETWORK_HRPS = {
    "mainnet": "bc",
    "testnet": "tb",
    "signet": "tb",
    "regtest": "bcrt",
}

BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32M_CONST = 0x2bc830a3


def tagged_hash(tag: str, data: bytes) -> bytes:
    """Compute BIP340-style tagged hash.

    Tagged hashing prevents cross-protocol attacks by domain-separating different
    hash uses. The tag is hashed twice and prepended to the message before the
    final hash.

    Args:
        tag: Domain separation tag (e.g., "TapLeaf", "TapTweak")
        data: Data to hash

    Returns:
        32-byte SHA256 hash
    """
    tag_hash = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_hash + tag_hash + data).digest()


def ser_compact_size(n: int) -> bytes:
    """Serialize an integer as a Bitcoin compact size."""
    if n < 253:
        return bytes([n])
    elif n <= 0xFFFF:
        return b'\xfd' + n.to_bytes(2, 'little')
    elif n <= 0xFFFFFFFF:
        return b'\xfe' + n.to_bytes(4, 'little')
    else:
        return b'\xff' + n.to_bytes(8, 'little')


def taproot_leaf_hash(leaf_script: bytes, leaf_version: int = TAPSCRIPT_LEAF_VERSION) -> bytes:
    """Compute TapLeaf hash for a single script leaf.

    Args:
        leaf_script: The script content
        leaf_version: Leaf version (0xc0 = TAPSCRIPT)

    Returns:
        32-byte tagged hash of the leaf
    """
    return tagged_hash(
        "TapLeaf",
        bytes([leaf_version]) + ser_compact_size(len(leaf_script)) + leaf_script
    )


def taproot_tweak_pubkey(internal_key: bytes, merkle_root: bytes) -> Tuple[bytes, int]:
    """Tweak an internal public key with a merkle root per BIP341.

    This implements the core Taproot tweaking operation:
    Q = P + H_taptweak(P || merkle_root) * G

    Args:
        internal_key: 32-byte x-only internal public key
        merkle_root: 32-byte merkle root hash (or empty for key-path only)

    Returns:
        Tuple of (tweaked_pubkey, parity) where:
            - tweaked_pubkey: 32-byte x-only tweaked public key
            - parity: 0 if even y-coordinate, 1 if odd

    Raises:
        ValueError: If the internal key is invalid or tweaking fails
    """
    if len(internal_key) != 32:
        raise ValueError(f"Internal key must be 32 bytes, got {len(internal_key)}")

    tweak_hash = tagged_hash("TapTweak", internal_key + merkle_root)
    tweak_int = int.from_bytes(tweak_hash, 'big')

    if tweak_int >= SECP256K1_ORDER:
        raise ValueError("Tweak value exceeds curve order")

    # x-only keys always lift to the even-y point
    try:
        internal_point = _point_from_xonly(internal_key)
    except ValueError as exc:
        raise ValueError(f"Invalid internal key: {exc}") from exc

    curve = ec.SECP256K1()
    tweak_key = ec.derive_private_key(tweak_int, curve, default_backend())
    tweak_point = tweak_key.public_key().public_numbers()

    tweaked_point = _point_add(internal_point, tweak_point)

    tweaked_x = tweaked_point.x.to_bytes(32, 'big')
    parity = tweaked_point.y % 2

    return tweaked_x, parity


def _point_from_xonly(x_bytes: bytes) -> ec.EllipticCurvePublicNumbers:
    """Reconstruct a secp256k1 point from x-only coordinate (assuming even y)."""
    x = int.from_bytes(x_bytes, 'big')

    if x >= SECP256K1_FIELD_SIZE:
        raise ValueError("x-coordinate exceeds field size")

    # y^2 = x^3 + 7 (mod p)
    y_squared = (pow(x, 3, SECP256K1_FIELD_SIZE) + 7) % SECP256K1_FIELD_SIZE

    # p = 3 mod 4, so the square root is y_squared^((p+1)/4)
    y = pow(y_squared, (SECP256K1_FIELD_SIZE + 1) // 4, SECP256K1_FIELD_SIZE)

    if pow(y, 2, SECP256K1_FIELD_SIZE) != y_squared:
        raise ValueError("x-coordinate is not on the curve")

    if y % 2 != 0:
        y = SECP256K1_FIELD_SIZE - y

    return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256K1())


def _point_add(p1: ec.EllipticCurvePublicNumbers, p2: ec.EllipticCurvePublicNumbers) -> ec.EllipticCurvePublicNumbers:
    """Add two secp256k1 points in affine coordinates."""
    x1, y1 = p1.x, p1.y
    x2, y2 = p2.x, p2.y

    p = SECP256K1_FIELD_SIZE

    if x1 == x2:
        if y1 == y2:
            lam = (3 * x1 * x1 * pow(2 * y1, -1, p)) % p
        else:
            raise ValueError("Point addition results in point at infinity")
    else:
        lam = ((y2 - y1) * pow(x2 - x1, -1, p)) % p

    x3 = (lam * lam - x1 - x2) % p
    y3 = (lam * (x1 - x3) - y1) % p

    return ec.EllipticCurvePublicNumbers(x3, y3, ec.SECP256K1())


@dataclass(frozen=True)
class TapLeaf:
    """A single tapscript leaf: compiled script plus its leaf version."""

    script: bytes
    leaf_version: int = TAPSCRIPT_LEAF_VERSION

    def __post_init__(self) -> None:
        if self.leaf_version & ~TAPROOT_LEAF_MASK & 0xFF:
            raise ValueError(f"Leaf version must be even, got {self.leaf_version:#x}")

    @property
    def leaf_hash(self) -> bytes:
        return taproot_leaf_hash(self.script, self.leaf_version)


@dataclass(frozen=True)
class TaprootPayment:
    """Commit output derived from an internal key and a single-leaf tree.

    The output key, script and address are a pure function of the internal
    key and the leaf. Nothing about the eventual reveal transaction feeds
    into them.
    """

    internal_key: bytes
    leaf: TapLeaf
    merkle_root: bytes
    output_key: bytes
    parity: int
    network: str

    @property
    def output_script(self) -> bytes:
        # OP_1 PUSH32 <output key>
        return bytes([0x51, 0x20]) + self.output_key

    @property
    def address(self) -> str:
        return create_taproot_address(self.output_key, NETWORK_HRPS[self.network])

    def control_block(self, leaf: TapLeaf | None = None) -> bytes:
        """Return the control block for spending ``leaf`` via the script path.

        Layout: ``<leaf_version | parity> <internal_key> [merkle_path]``. The
        merkle path is empty because the tree has exactly one leaf.

        Raises:
            ValueError: If ``leaf`` (script or version) is not the committed leaf
        """
        leaf = leaf or self.leaf
        if leaf != self.leaf:
            raise ValueError("Leaf is not part of the committed script tree")
        return bytes([leaf.leaf_version | self.parity]) + self.internal_key


def derive_taproot_payment(internal_key: bytes, leaf: TapLeaf, network: str) -> TaprootPayment:
    """Compute the Taproot commit output for a single leaf.

    For a single leaf the merkle root equals the leaf hash. The internal key is
    tweaked with that root and the result is encoded for ``network``.

    Args:
        internal_key: 32-byte x-only internal key
        leaf: The committed tapscript leaf (e.g., inscription envelope)
        network: One of ``NETWORK_HRPS``

    Returns:
        A :class:`TaprootPayment` describing the commit output
    """
    if len(internal_key) != 32:
        raise ValueError(f"Internal key must be 32 bytes, got {len(internal_key)}")
    if network not in NETWORK_HRPS:
        raise ValueError(f"Unsupported network: {network}")

    merkle_root = leaf.leaf_hash
    output_key, parity = taproot_tweak_pubkey(internal_key, merkle_root)

    payment = TaprootPayment(
        internal_key=internal_key,
        leaf=leaf,
        merkle_root=merkle_root,
        output_key=output_key,
        parity=parity,
        network=network,
    )
    logger.debug(
        "Derived taproot output key %s (parity %d) from leaf %s",
        output_key.hex(),
        parity,
        merkle_root.hex(),
    )
    return payment


def verify_control_block(control_block: bytes, leaf: TapLeaf, output_key: bytes) -> bool:
    """Check that ``control_block`` proves ``leaf`` is committed in ``output_key``.

    The merkle path inside the control block is folded with the leaf hash, the
    embedded internal key is tweaked with the result, and the tweaked key and
    parity must match the spent output.
    """
    if len(control_block) < 33 or (len(control_block) - 33) % 32:
        return False
    if control_block[0] & TAPROOT_LEAF_MASK != leaf.leaf_version:
        return False

    internal_key = control_block[1:33]
    node = leaf.leaf_hash
    for start in range(33, len(control_block), 32):
        sibling = control_block[start:start + 32]
        left, right = sorted((node, sibling))
        node = tagged_hash("TapBranch", left + right)

    try:
        tweaked, parity = taproot_tweak_pubkey(internal_key, node)
    except ValueError:
        return False
    return tweaked == output_key and parity == control_block[0] & 1


def bech32_polymod(values: list[int]) -> int:
    """Compute bech32 checksum polymod."""
    GEN = [0x3b6a57b2, 0x26508e6d, 0x1ea119fa, 0x3d4233dd, 0x2a1462b3]
    chk = 1
    for value in values:
        b = chk >> 25
        chk = (chk & 0x1ffffff) << 5 ^ value
        for i in range(5):
            chk ^= GEN[i] if ((b >> i) & 1) else 0
    return chk


def bech32_hrp_expand(hrp: str) -> list[int]:
    """Expand HRP for bech32 checksum."""
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def bech32_create_checksum(hrp: str, data: list[int], encoding: str) -> list[int]:
    """Compute bech32/bech32m checksum.

    Args:
        hrp: Human-readable part
        data: Data values (5-bit)
        encoding: Either 'bech32' or 'bech32m'

    Returns:
        Checksum values (6 elements)
    """
    values = bech32_hrp_expand(hrp) + data
    const = BECH32M_CONST if encoding == 'bech32m' else 1
    polymod = bech32_polymod(values + [0, 0, 0, 0, 0, 0]) ^ const
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def bech32_encode(hrp: str, witver: int, witprog: bytes) -> str:
    """Encode a segwit address using bech32m (for witness v1+) or bech32 (v0).

    Args:
        hrp: Human-readable part (e.g., 'bcrt' for regtest)
        witver: Witness version (0-16)
        witprog: Witness program bytes

    Returns:
        Bech32/bech32m encoded address
    """
    encoding = 'bech32m' if witver >= 1 else 'bech32'

    data = _convertbits(witprog, 8, 5)
    if data is None:
        raise ValueError("Failed to convert witness program to 5-bit")

    combined = [witver] + data
    checksum = bech32_create_checksum(hrp, combined, encoding)
    return hrp + '1' + ''.join([BECH32_CHARSET[d] for d in combined + checksum])


def _convertbits(data: bytes, frombits: int, tobits: int, pad: bool = True) -> list[int] | None:
    """Convert between bit groups.

    Args:
        data: Input data
        frombits: Input bit width
        tobits: Output bit width
        pad: Whether to pad the output

    Returns:
        List of converted values, or None on error
    """
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1

    for value in data:
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)

    if pad and bits:
        ret.append((acc << (tobits - bits)) & maxv)

    return ret


def create_taproot_address(output_key: bytes, hrp: str = "bcrt") -> str:
    """Create a Taproot (bech32m) address from an output key.

    Args:
        output_key: 32-byte tweaked output key
        hrp: Human-readable part ('bcrt' for regtest, 'tb' for testnet)

    Returns:
        Bech32m encoded Taproot address (witness v1)
    """
    if len(output_key) != 32:
        raise ValueError(f"Output key must be 32 bytes, got {len(output_key)}")

    return bech32_encode(hrp, 1, output_key)
