"""
Signed messages in the Bitcoin "signmessage" format, using Baseline's prefix.
"""

from __future__ import annotations

import base64
import binascii

from coincurve import PublicKey

from baseline_wallet.constants import BASELINE_NETWORK, NetworkParams
from baseline_wallet.wallet.address import hash256, pubkey_to_p2pkh_address
from baseline_wallet.wallet.derivation import key_pair_from_wif
from baseline_wallet.wallet.signing import encode_varint

# Compact signature header: 27 + recovery id, +4 for compressed keys
COMPACT_HEADER_BASE = 27
COMPACT_COMPRESSED_FLAG = 4


def message_hash(message: str, network: NetworkParams = BASELINE_NETWORK) -> bytes:
    """
    Hash a message using the network's message signing format.

    Format: SHA256(SHA256(prefix + varint(len) + message))
    """
    msg_bytes = message.encode("utf-8")
    return hash256(network.message_prefix + encode_varint(len(msg_bytes)) + msg_bytes)


def sign_message(wif: str, message: str, network: NetworkParams = BASELINE_NETWORK) -> str:
    """
    Sign a message with a WIF key.

    Returns:
        Base64-encoded 65-byte compact recoverable signature
    """
    pair = key_pair_from_wif(wif, network)
    recoverable = pair.private_key.sign_recoverable(message_hash(message, network), hasher=None)
    rs, recid = recoverable[:64], recoverable[64]

    header = COMPACT_HEADER_BASE + recid
    if pair.compressed:
        header += COMPACT_COMPRESSED_FLAG

    return base64.b64encode(bytes([header]) + rs).decode("ascii")


def verify_message(
    address: str, signature_b64: str, message: str, network: NetworkParams = BASELINE_NETWORK
) -> bool:
    """Check that `signature_b64` over `message` was made by the key behind `address`."""
    try:
        signature = base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError):
        return False

    if len(signature) != 65:
        return False

    header = signature[0] - COMPACT_HEADER_BASE
    if header < 0 or header > 7:
        return False
    compressed = header >= COMPACT_COMPRESSED_FLAG
    recid = header - COMPACT_COMPRESSED_FLAG if compressed else header

    try:
        pubkey = PublicKey.from_signature_and_message(
            signature[1:] + bytes([recid]), message_hash(message, network), hasher=None
        )
    except ValueError:
        return False

    recovered = pubkey_to_p2pkh_address(pubkey.format(compressed=compressed), network)
    return recovered == address
