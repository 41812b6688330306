"""
Key derivation from the three supported secret formats:

- BIP39 mnemonic -> BIP32 keys at m/44'/account'/0'/0/index
- 32-byte Baseline wallet.json seed -> SHA256(seed || index) keys
- single WIF-encoded private key
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any

from coincurve import PrivateKey
from loguru import logger
from mnemonic import Mnemonic

from baseline_wallet.constants import BASELINE_NETWORK, NetworkParams
from baseline_wallet.errors import (
    EncryptedBackupUnsupported,
    InvalidEncodedKey,
    InvalidMnemonic,
    InvalidSeedFormat,
    MalformedBackup,
    MissingSeed,
)
from baseline_wallet.wallet.address import decode_wif, encode_wif, pubkey_to_p2pkh_address
from baseline_wallet.wallet.bip32 import SECP256K1_N, HDKey, mnemonic_to_seed
from baseline_wallet.wallet.models import DerivedKey, KeyPair, KeyRing

_SEED_HEX_RE = re.compile(r"^[0-9a-fA-F]{64}$")

_wordlist = Mnemonic("english")


def generate_mnemonic(strength: int = 128) -> str:
    """Generate a BIP39 mnemonic (128 bits of entropy = 12 words)."""
    return _wordlist.generate(strength=strength)


def normalize_mnemonic(phrase: str) -> str:
    return " ".join(phrase.strip().lower().split())


def validate_mnemonic(phrase: str) -> bool:
    try:
        return _wordlist.check(phrase)
    except (ValueError, LookupError):
        return False


def mnemonic_path(index: int, account: int = 0) -> str:
    return f"m/44'/{account}'/0'/0/{index}"


def derive_from_mnemonic(
    phrase: str,
    count: int,
    start_index: int = 0,
    account: int = 0,
    network: NetworkParams = BASELINE_NETWORK,
) -> list[DerivedKey]:
    """
    Derive `count` keys along m/44'/account'/0'/0/{start_index..}.

    Raises:
        InvalidMnemonic: Phrase fails BIP39 checksum validation
    """
    if not validate_mnemonic(phrase):
        raise InvalidMnemonic("Invalid mnemonic")

    root = HDKey.from_seed(mnemonic_to_seed(phrase))
    derived: list[DerivedKey] = []
    for index in range(start_index, start_index + count):
        path = mnemonic_path(index, account)
        child = root.derive(path)
        derived.append(
            DerivedKey(
                address=child.get_address(network),
                wif=child.get_wif(network),
                path=path,
            )
        )
    return derived


def account_extended_public_key(
    phrase: str, account: int = 0, network: NetworkParams = BASELINE_NETWORK
) -> str:
    """Extended public key of m/44'/account'/0' for watch-only tracking."""
    if not validate_mnemonic(phrase):
        raise InvalidMnemonic("Invalid mnemonic")
    root = HDKey.from_seed(mnemonic_to_seed(phrase))
    return root.derive(f"m/44'/{account}'/0'").extended_public_key(network)


def seed_index_to_secret(seed: bytes, index: int) -> bytes:
    """
    Baseline wallet.json key scheme (not BIP32):
    priv = SHA256(seed || be32(index)) mod (n - 1) + 1
    """
    digest = hashlib.sha256(seed + index.to_bytes(4, "big")).digest()
    scalar = int.from_bytes(digest, "big") % (SECP256K1_N - 1) + 1
    return scalar.to_bytes(32, "big")


def derive_from_raw_seed(
    seed_hex: str,
    count: int,
    start_index: int = 0,
    network: NetworkParams = BASELINE_NETWORK,
) -> list[DerivedKey]:
    """
    Derive `count` keys from a 32-byte Baseline wallet seed.

    Raises:
        InvalidSeedFormat: Seed is not exactly 64 hex characters
    """
    if not isinstance(seed_hex, str) or not _SEED_HEX_RE.match(seed_hex):
        raise InvalidSeedFormat("Seed must be 32-byte hex from wallet.json")

    seed = bytes.fromhex(seed_hex)
    derived: list[DerivedKey] = []
    for index in range(start_index, start_index + count):
        secret = seed_index_to_secret(seed, index)
        pubkey = PrivateKey(secret).public_key.format(compressed=True)
        derived.append(
            DerivedKey(
                address=pubkey_to_p2pkh_address(pubkey, network),
                wif=encode_wif(secret, compressed=True, network=network),
                path=f"baseline:{index}",
            )
        )
    return derived


def key_pair_from_wif(wif: str, network: NetworkParams = BASELINE_NETWORK) -> KeyPair:
    secret, compressed = decode_wif(wif, network)
    try:
        private_key = PrivateKey(secret)
    except ValueError as e:
        raise InvalidEncodedKey("Private key is out of range") from e
    return KeyPair(private_key=private_key, compressed=compressed)


def key_from_encoded(
    wif: str, label: str | None = None, network: NetworkParams = BASELINE_NETWORK
) -> DerivedKey:
    """
    Recover a single key from its WIF encoding.

    Raises:
        InvalidEncodedKey: Bad checksum, version or length
    """
    pair = key_pair_from_wif(wif, network)
    return DerivedKey(
        address=pubkey_to_p2pkh_address(pair.public_key, network),
        wif=encode_wif(pair.private_key.secret, compressed=pair.compressed, network=network),
        label=label,
    )


def _as_index(value: Any) -> int:
    if isinstance(value, bool):
        raise MalformedBackup("Invalid next_index in wallet.json")
    try:
        index = int(value)
    except (TypeError, ValueError) as e:
        raise MalformedBackup("Invalid next_index in wallet.json") from e
    if index < 0:
        raise MalformedBackup("Invalid next_index in wallet.json")
    return index


def parse_seed_backup_file(json_text: str) -> tuple[str, int]:
    """
    Parse a Baseline node wallet.json backup.

    Returns:
        (seed_hex, next_index) where next_index covers every address the
        backup declares.

    Raises:
        MalformedBackup: Not JSON, not an object, or bad index
        EncryptedBackupUnsupported: Backup is encrypted
        MissingSeed: No 64-hex-char seed
    """
    try:
        data = json.loads(json_text)
    except (TypeError, ValueError) as e:
        raise MalformedBackup("Invalid wallet.json (not JSON)") from e

    if not isinstance(data, dict):
        raise MalformedBackup("Invalid wallet.json (expected an object)")

    if data.get("encrypted"):
        raise EncryptedBackupUnsupported(
            "Encrypted wallet.json is not supported; unlock via node wallet"
        )

    seed_hex = data.get("seed")
    if not isinstance(seed_hex, str) or not _SEED_HEX_RE.match(seed_hex):
        raise MissingSeed("wallet.json missing seed")

    raw_index = data.get("next_index")
    if raw_index is None:
        raw_index = data.get("nextIndex", 0)
    next_index = _as_index(raw_index)

    addresses = data.get("addresses") or {}
    address_count = len(addresses) if isinstance(addresses, dict | list) else 0

    target = max(next_index, address_count)
    logger.debug(f"Parsed wallet.json backup: next_index={target}")
    return seed_hex, target


def build_key_ring(keys: list[DerivedKey], network: NetworkParams = BASELINE_NETWORK) -> KeyRing:
    """Map each address to its signing key."""
    return {key.address: key_pair_from_wif(key.wif, network) for key in keys}
