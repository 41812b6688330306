"""
Legacy (pre-SegWit) transaction serialization and P2PKH input signing.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace

from coincurve import verify_signature

from baseline_wallet.errors import SigningError
from baseline_wallet.wallet.address import P2PKH_PREFIX, P2PKH_SUFFIX, hash160, hash256
from baseline_wallet.wallet.models import KeyPair

SIGHASH_ALL = 1

TX_VERSION = 1
DEFAULT_SEQUENCE = 0xFFFFFFFF
# Makes nLockTime enforceable without opting into BIP68 relative locks
LOCKTIME_SEQUENCE = 0xFFFFFFFE
MAX_LOCK_TIME = 0xFFFFFFFF

OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D


@dataclass
class TxInput:
    txid: str  # display (big-endian) hex
    vout: int
    script_sig: bytes = b""
    sequence: int = DEFAULT_SEQUENCE


@dataclass
class TxOutput:
    value: int
    script_pubkey: bytes


@dataclass
class Transaction:
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    locktime: int = 0
    version: int = TX_VERSION

    def serialize(self) -> bytes:
        result = struct.pack("<i", self.version)

        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += serialize_outpoint(inp.txid, inp.vout)
            result += encode_varint(len(inp.script_sig))
            result += inp.script_sig
            result += struct.pack("<I", inp.sequence)

        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += struct.pack("<Q", out.value)
            result += encode_varint(len(out.script_pubkey))
            result += out.script_pubkey

        result += struct.pack("<I", self.locktime)
        return result

    def to_hex(self) -> str:
        return self.serialize().hex()

    @property
    def txid(self) -> str:
        return hash256(self.serialize())[::-1].hex()

    @property
    def vsize(self) -> int:
        # No witness data, so virtual size equals serialized size
        return len(self.serialize())


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        value = int.from_bytes(data[offset : offset + 2], "little")
        return value, offset + 2
    if first == 0xFE:
        value = int.from_bytes(data[offset : offset + 4], "little")
        return value, offset + 4
    value = int.from_bytes(data[offset : offset + 8], "little")
    return value, offset + 8


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


def serialize_outpoint(txid: str, vout: int) -> bytes:
    """Serialize outpoint (txid:vout)."""
    # txid is in RPC format (big-endian), need to reverse for raw tx
    txid_bytes = bytes.fromhex(txid)[::-1]
    if len(txid_bytes) != 32:
        raise ValueError(f"Invalid txid length: {len(txid_bytes)}")
    return txid_bytes + struct.pack("<I", vout)


def _take(data: bytes, offset: int, length: int) -> tuple[bytes, int]:
    chunk = data[offset : offset + length]
    if len(chunk) != length:
        raise ValueError("Unexpected end of data")
    return chunk, offset + length


def deserialize_transaction(tx_bytes: bytes) -> Transaction:
    try:
        version_bytes, offset = _take(tx_bytes, 0, 4)
        version = struct.unpack("<i", version_bytes)[0]

        if tx_bytes[offset] == 0x00 and tx_bytes[offset + 1] == 0x01:
            raise ValueError("SegWit transactions are not supported")

        input_count, offset = read_varint(tx_bytes, offset)
        inputs: list[TxInput] = []

        for _ in range(input_count):
            txid_le, offset = _take(tx_bytes, offset, 32)
            vout_bytes, offset = _take(tx_bytes, offset, 4)
            script_len, offset = read_varint(tx_bytes, offset)
            script, offset = _take(tx_bytes, offset, script_len)
            sequence_bytes, offset = _take(tx_bytes, offset, 4)

            inputs.append(
                TxInput(
                    txid=txid_le[::-1].hex(),
                    vout=int.from_bytes(vout_bytes, "little"),
                    script_sig=script,
                    sequence=int.from_bytes(sequence_bytes, "little"),
                )
            )

        output_count, offset = read_varint(tx_bytes, offset)
        outputs: list[TxOutput] = []

        for _ in range(output_count):
            value_bytes, offset = _take(tx_bytes, offset, 8)
            script_len, offset = read_varint(tx_bytes, offset)
            script, offset = _take(tx_bytes, offset, script_len)
            outputs.append(TxOutput(int.from_bytes(value_bytes, "little"), script))

        locktime_bytes, offset = _take(tx_bytes, offset, 4)
        if offset != len(tx_bytes):
            raise ValueError("Trailing data after locktime")

        return Transaction(
            inputs=inputs,
            outputs=outputs,
            locktime=int.from_bytes(locktime_bytes, "little"),
            version=version,
        )

    except (ValueError, IndexError, struct.error) as e:
        raise SigningError(f"Failed to parse transaction: {e}") from e


def compute_legacy_sighash(
    tx: Transaction,
    input_index: int,
    prev_script: bytes,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """
    Original (pre-BIP143) signature hash.

    Every scriptSig is blanked except the signed input, which carries the
    previous output's scriptPubKey.
    """
    if input_index < 0 or input_index >= len(tx.inputs):
        raise SigningError("Input index out of range")
    if sighash_type != SIGHASH_ALL:
        raise SigningError(f"Unsupported sighash type: {sighash_type}")

    inputs = [
        replace(inp, script_sig=prev_script if i == input_index else b"")
        for i, inp in enumerate(tx.inputs)
    ]
    stripped = replace(tx, inputs=inputs)

    preimage = stripped.serialize() + struct.pack("<I", sighash_type)
    return hash256(preimage)


def sign_p2pkh_input(
    tx: Transaction,
    input_index: int,
    prev_script: bytes,
    key: KeyPair,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """Sign a P2PKH input using coincurve.

    Args:
        tx: The transaction to sign
        input_index: Index of the input to sign
        prev_script: scriptPubKey of the output being spent
        key: Signing key for the input's address
        sighash_type: Sighash type (default SIGHASH_ALL = 1)

    Returns:
        DER-encoded signature with sighash type byte appended
    """
    sighash = compute_legacy_sighash(tx, input_index, prev_script, sighash_type)

    # Sign the pre-hashed sighash (it's already SHA256d)
    # coincurve's sign() with hasher=None skips hashing
    signature = key.private_key.sign(sighash, hasher=None)

    return signature + bytes([sighash_type])


def push_data(data: bytes) -> bytes:
    length = len(data)
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + length.to_bytes(2, "little") + data
    raise ValueError(f"Push too large: {length} bytes")


def create_p2pkh_script_sig(signature: bytes, pubkey: bytes) -> bytes:
    """<sig> <pubkey>"""
    return push_data(signature) + push_data(pubkey)


def parse_script_pushes(script: bytes) -> list[bytes]:
    """Split a push-only script into its data items."""
    items: list[bytes] = []
    offset = 0
    while offset < len(script):
        opcode = script[offset]
        offset += 1
        if opcode < OP_PUSHDATA1:
            length = opcode
        elif opcode == OP_PUSHDATA1:
            length = script[offset]
            offset += 1
        elif opcode == OP_PUSHDATA2:
            length = int.from_bytes(script[offset : offset + 2], "little")
            offset += 2
        else:
            raise ValueError(f"Non-push opcode 0x{opcode:02x} in scriptSig")
        item, offset = _take(script, offset, length)
        items.append(item)
    return items


def verify_input_signature(tx: Transaction, input_index: int, prev_script: bytes) -> bool:
    """
    Check that input `input_index` carries a valid <sig> <pubkey> for a
    P2PKH `prev_script`.
    """
    try:
        sig_with_type, pubkey = parse_script_pushes(tx.inputs[input_index].script_sig)
    except (ValueError, IndexError):
        return False

    if prev_script != P2PKH_PREFIX + hash160(pubkey) + P2PKH_SUFFIX:
        return False
    if not sig_with_type:
        return False

    der_signature, sighash_type = sig_with_type[:-1], sig_with_type[-1]
    try:
        sighash = compute_legacy_sighash(tx, input_index, prev_script, sighash_type)
        return verify_signature(der_signature, sighash, pubkey, hasher=None)
    except (SigningError, ValueError):
        return False
