"""
Baseline address and key encoding utilities.

Only legacy pay-to-pubkey-hash (P2PKH) outputs are produced or spent.
"""

from __future__ import annotations

import hashlib

import base58

from baseline_wallet.constants import BASELINE_NETWORK, NetworkParams
from baseline_wallet.errors import InvalidEncodedKey, UnresolvableAddress

# OP_DUP OP_HASH160 PUSH20 <pkh> OP_EQUALVERIFY OP_CHECKSIG
P2PKH_PREFIX = b"\x76\xa9\x14"
P2PKH_SUFFIX = b"\x88\xac"


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def base58check_encode(version: int, payload: bytes) -> str:
    return base58.b58encode_check(bytes([version]) + payload).decode("ascii")


def base58check_decode(encoded: str) -> tuple[int, bytes]:
    """Decode Base58Check text into (version, payload). Raises ValueError."""
    raw = base58.b58decode_check(encoded)
    if not raw:
        raise ValueError("Empty Base58Check payload")
    return raw[0], raw[1:]


def pubkey_hash_to_p2pkh_script(pubkey_hash: bytes) -> bytes:
    if len(pubkey_hash) != 20:
        raise ValueError(f"Invalid pubkey hash length: {len(pubkey_hash)}")
    return P2PKH_PREFIX + pubkey_hash + P2PKH_SUFFIX


def pubkey_to_p2pkh_address(pubkey: bytes, network: NetworkParams = BASELINE_NETWORK) -> str:
    """Convert a serialized public key to its legacy P2PKH address."""
    if len(pubkey) not in (33, 65):
        raise ValueError(f"Invalid pubkey length: {len(pubkey)}")
    return base58check_encode(network.pubkey_hash_version, hash160(pubkey))


def pubkey_to_p2pkh_script(pubkey: bytes) -> bytes:
    return pubkey_hash_to_p2pkh_script(hash160(pubkey))


def address_to_pubkey_hash(address: str, network: NetworkParams = BASELINE_NETWORK) -> bytes:
    """
    Decode a P2PKH address into its 20-byte pubkey hash.

    Raises:
        UnresolvableAddress: Bad Base58Check, wrong version byte or length
    """
    try:
        version, payload = base58check_decode(address.strip())
    except ValueError as e:
        raise UnresolvableAddress(address, "malformed Base58Check") from e

    if version != network.pubkey_hash_version:
        raise UnresolvableAddress(address, f"unexpected version byte 0x{version:02x}")
    if len(payload) != 20:
        raise UnresolvableAddress(address, f"unexpected payload length {len(payload)}")
    return payload


def script_for_address(address: str, network: NetworkParams = BASELINE_NETWORK) -> bytes:
    """Resolve a Baseline address into its P2PKH scriptPubKey."""
    return pubkey_hash_to_p2pkh_script(address_to_pubkey_hash(address, network))


def script_to_p2pkh_address(
    script_pubkey: bytes | str, network: NetworkParams = BASELINE_NETWORK
) -> str | None:
    """Decode a P2PKH scriptPubKey (bytes or hex) to its address, or None for any other script."""
    if isinstance(script_pubkey, str):
        try:
            script_pubkey = bytes.fromhex(script_pubkey)
        except ValueError:
            return None
    if (
        len(script_pubkey) != 25
        or not script_pubkey.startswith(P2PKH_PREFIX)
        or not script_pubkey.endswith(P2PKH_SUFFIX)
    ):
        return None
    return base58check_encode(network.pubkey_hash_version, script_pubkey[3:23])


def is_valid_address(address: str, network: NetworkParams = BASELINE_NETWORK) -> bool:
    try:
        address_to_pubkey_hash(address, network)
    except UnresolvableAddress:
        return False
    return True


def encode_wif(
    secret: bytes, compressed: bool = True, network: NetworkParams = BASELINE_NETWORK
) -> str:
    """Encode a 32-byte private key in Wallet Import Format."""
    if len(secret) != 32:
        raise ValueError(f"Invalid private key length: {len(secret)}")
    payload = secret + (b"\x01" if compressed else b"")
    return base58check_encode(network.wif_version, payload)


def decode_wif(wif: str, network: NetworkParams = BASELINE_NETWORK) -> tuple[bytes, bool]:
    """
    Decode a WIF string into (secret, compressed).

    Raises:
        InvalidEncodedKey: Bad checksum, version byte or payload length
    """
    try:
        version, payload = base58check_decode(wif.strip())
    except ValueError as e:
        raise InvalidEncodedKey("Invalid private key encoding (bad Base58Check)") from e

    if version != network.wif_version:
        raise InvalidEncodedKey(f"Invalid private key version byte 0x{version:02x}")

    if len(payload) == 33 and payload[32] == 0x01:
        return payload[:32], True
    if len(payload) == 32:
        return payload, False
    raise InvalidEncodedKey(f"Invalid private key payload length: {len(payload)}")
