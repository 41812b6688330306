"""
BIP32 HD key derivation for Baseline wallets.
Implements BIP44-style legacy derivation paths (m/44'/account'/0'/0/index).
"""

from __future__ import annotations

import hashlib
import hmac

import base58
from coincurve import PrivateKey, PublicKey
from mnemonic import Mnemonic

from baseline_wallet.constants import BASELINE_NETWORK, NetworkParams

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

HARDENED_OFFSET = 0x80000000


class HDKey:
    """
    Hierarchical Deterministic Key for Baseline.
    Implements BIP32 derivation.
    """

    def __init__(
        self,
        private_key: PrivateKey,
        chain_code: bytes,
        depth: int = 0,
        parent_fingerprint: bytes = b"\x00\x00\x00\x00",
        child_number: int = 0,
    ):
        self._private_key = private_key
        self._public_key = private_key.public_key
        self.chain_code = chain_code
        self.depth = depth
        self.parent_fingerprint = parent_fingerprint
        self.child_number = child_number

    @property
    def private_key(self) -> PrivateKey:
        """Return the coincurve PrivateKey instance."""
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        """Return the coincurve PublicKey instance."""
        return self._public_key

    @property
    def fingerprint(self) -> bytes:
        """First four bytes of HASH160 of the compressed public key."""
        from baseline_wallet.wallet.address import hash160

        return hash160(self.get_public_key_bytes(compressed=True))[:4]

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from seed"""
        hmac_result = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_bytes = hmac_result[:32]
        chain_code = hmac_result[32:]

        private_key = PrivateKey(key_bytes)

        return cls(private_key, chain_code, depth=0)

    def derive(self, path: str) -> HDKey:
        """
        Derive child key from path notation (e.g., "m/44'/0'/0'/0/0")
        ' indicates hardened derivation
        """
        if not path.startswith("m"):
            raise ValueError("Path must start with 'm'")

        parts = path.split("/")[1:]
        key = self

        for part in parts:
            if not part:
                continue

            hardened = part.endswith("'") or part.endswith("h")
            index_str = part.rstrip("'h")
            index = int(index_str)

            if hardened:
                index += HARDENED_OFFSET

            key = key._derive_child(index)

        return key

    def _derive_child(self, index: int) -> HDKey:
        """Derive a child key at the given index"""
        hardened = index >= HARDENED_OFFSET

        if hardened:
            priv_bytes = self._private_key.secret
            data = b"\x00" + priv_bytes + index.to_bytes(4, "big")
        else:
            pub_bytes = self._public_key.format(compressed=True)
            data = pub_bytes + index.to_bytes(4, "big")

        hmac_result = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        key_offset = hmac_result[:32]
        child_chain = hmac_result[32:]

        parent_key_int = int.from_bytes(self._private_key.secret, "big")
        offset_int = int.from_bytes(key_offset, "big")

        if offset_int >= SECP256K1_N:
            raise ValueError("Invalid child key")

        child_key_int = (parent_key_int + offset_int) % SECP256K1_N

        if child_key_int == 0:
            raise ValueError("Invalid child key")

        child_key_bytes = child_key_int.to_bytes(32, "big")
        child_private_key = PrivateKey(child_key_bytes)

        return HDKey(
            child_private_key,
            child_chain,
            depth=self.depth + 1,
            parent_fingerprint=self.fingerprint,
            child_number=index,
        )

    def get_private_key_bytes(self) -> bytes:
        """Get private key as 32 bytes"""
        return self._private_key.secret

    def get_public_key_bytes(self, compressed: bool = True) -> bytes:
        """Get public key bytes"""
        return self._public_key.format(compressed=compressed)

    def get_address(self, network: NetworkParams = BASELINE_NETWORK) -> str:
        """Get legacy P2PKH address for this key"""
        from baseline_wallet.wallet.address import pubkey_to_p2pkh_address

        return pubkey_to_p2pkh_address(self.get_public_key_bytes(compressed=True), network)

    def get_wif(self, network: NetworkParams = BASELINE_NETWORK) -> str:
        """Get compressed WIF encoding of the private key"""
        from baseline_wallet.wallet.address import encode_wif

        return encode_wif(self.get_private_key_bytes(), compressed=True, network=network)

    def _serialize(self, version: int, key_data: bytes) -> str:
        payload = (
            version.to_bytes(4, "big")
            + bytes([self.depth])
            + self.parent_fingerprint
            + self.child_number.to_bytes(4, "big")
            + self.chain_code
            + key_data
        )
        return base58.b58encode_check(payload).decode("ascii")

    def extended_private_key(self, network: NetworkParams = BASELINE_NETWORK) -> str:
        """Serialize as an extended private key using the network's BIP32 version"""
        return self._serialize(network.bip32_private_version, b"\x00" + self.get_private_key_bytes())

    def extended_public_key(self, network: NetworkParams = BASELINE_NETWORK) -> str:
        """Serialize as an extended public key using the network's BIP32 version"""
        return self._serialize(network.bip32_public_version, self.get_public_key_bytes())


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Convert BIP39 mnemonic to its 512-bit seed (PBKDF2, salt "mnemonic" + passphrase)."""
    return Mnemonic.to_seed(mnemonic, passphrase=passphrase)
