"""
Tests for the wallet session state machine.
"""

import json

import pytest
from conftest import TEST_ITERATIONS, TEST_SEED_HEX

from baseline_wallet.errors import (
    CannotExtendImportedKey,
    DecryptionFailed,
    InvalidEncodedKey,
    InvalidMnemonic,
    MissingSeed,
    StorageError,
    WalletStateError,
)
from baseline_wallet.wallet.derivation import derive_from_mnemonic, derive_from_raw_seed
from baseline_wallet.wallet.models import MnemonicSecrets, RawKeySecrets, SeedBackupSecrets
from baseline_wallet.wallet.session import (
    WalletSession,
    WalletStatus,
    runtime_from_persisted,
    to_persisted,
)
from baseline_wallet.wallet.storage import decrypt_payload

FIRST_ADDRESS = "Nfk9TC8B9eXypnBLFgjiyKFBEFyYJXTxb8"
FIRST_WIF = "L4p2b9VAf8k5aUahF1JCJUzZkgNEAqLfq8DDdQiyAprQAKSbu8hf"
PASS = "hunter2"


def _reopen(store):
    return WalletSession(store, kdf_iterations=TEST_ITERATIONS)


class TestInitialState:
    def test_empty_without_file(self, session):
        assert session.status == WalletStatus.EMPTY
        assert session.keys == []
        assert session.key_ring == {}

    def test_locked_with_file(self, ready_session, store):
        assert _reopen(store).status == WalletStatus.LOCKED


class TestCreate:
    def test_create(self, session, store):
        secrets = session.create(PASS)
        assert isinstance(secrets, MnemonicSecrets)
        assert len(secrets.mnemonic.split()) == 12
        assert secrets.next_index == 5
        assert len(session.addresses) == 5
        assert session.status == WalletStatus.READY
        assert store.exists()

    def test_create_only_when_empty(self, ready_session):
        with pytest.raises(WalletStateError):
            ready_session.create(PASS)

    def test_persisted_payload_has_no_keys(self, session, store):
        secrets = session.create(PASS)
        payload = decrypt_payload(PASS, store.load())
        assert payload == {"kind": "mnemonic", "mnemonic": secrets.mnemonic, "nextIndex": 5}


class TestImports:
    def test_import_mnemonic_normalizes(self, session, test_mnemonic):
        secrets = session.import_mnemonic("  " + test_mnemonic.upper() + "  ", PASS)
        assert secrets.mnemonic == test_mnemonic
        assert session.addresses[0] == FIRST_ADDRESS
        assert session.status == WalletStatus.READY

    def test_import_invalid_mnemonic_leaves_state(self, session, store):
        with pytest.raises(InvalidMnemonic):
            session.import_mnemonic("abandon " * 12, PASS)
        assert session.status == WalletStatus.EMPTY
        assert not store.exists()

    def test_import_wif(self, session):
        secrets = session.import_encoded_key(FIRST_WIF, PASS, label="cold")
        assert isinstance(secrets, RawKeySecrets)
        assert session.addresses == [FIRST_ADDRESS]
        assert session.keys[0].label == "cold"
        assert FIRST_ADDRESS in session.key_ring

    def test_import_bad_wif(self, session):
        with pytest.raises(InvalidEncodedKey):
            session.import_encoded_key("nope", PASS)
        assert session.status == WalletStatus.EMPTY

    def test_import_seed_backup(self, session):
        text = json.dumps({"seed": TEST_SEED_HEX, "next_index": 8})
        secrets = session.import_seed_backup(text, PASS)
        assert isinstance(secrets, SeedBackupSecrets)
        assert secrets.next_index == 8
        assert len(session.keys) == 8
        assert session.addresses[0] == "NbczVeGRYn1NYNvstzcSKpoW8LYeBR8CEt"

    def test_import_seed_backup_minimum_batch(self, session):
        secrets = session.import_seed_backup(json.dumps({"seed": TEST_SEED_HEX}), PASS)
        assert secrets.next_index == 5
        assert len(session.keys) == 5

    def test_import_seed_backup_missing_seed(self, session):
        with pytest.raises(MissingSeed):
            session.import_seed_backup("{}", PASS)

    def test_import_replaces_locked_wallet(self, ready_session, store):
        locked = _reopen(store)
        locked.import_encoded_key(FIRST_WIF, "other")
        fresh = _reopen(store)
        secrets = fresh.unlock("other")
        assert isinstance(secrets, RawKeySecrets)

    def test_import_when_ready_rejected(self, ready_session):
        with pytest.raises(WalletStateError):
            ready_session.import_encoded_key(FIRST_WIF, PASS)


class TestUnlockLock:
    def test_unlock_rederives(self, ready_session, store):
        session = _reopen(store)
        secrets = session.unlock(PASS)
        assert isinstance(secrets, MnemonicSecrets)
        assert session.keys == ready_session.keys
        assert session.status == WalletStatus.READY

    def test_wrong_passphrase(self, ready_session, store):
        session = _reopen(store)
        with pytest.raises(DecryptionFailed):
            session.unlock("wrong")
        assert session.status == WalletStatus.LOCKED
        assert session.keys == []

    def test_unlock_requires_locked(self, session):
        with pytest.raises(WalletStateError):
            session.unlock(PASS)

    def test_unlock_after_file_removed(self, ready_session, store):
        session = _reopen(store)
        store.clear()
        with pytest.raises(WalletStateError):
            session.unlock(PASS)
        assert session.status == WalletStatus.EMPTY

    def test_lock_forgets_secrets(self, ready_session):
        ready_session.lock()
        assert ready_session.status == WalletStatus.LOCKED
        assert ready_session.secrets is None
        assert ready_session.keys == []
        assert ready_session.key_ring == {}

    def test_lock_then_unlock(self, ready_session):
        addresses = ready_session.addresses
        ready_session.lock()
        ready_session.unlock(PASS)
        assert ready_session.addresses == addresses

    def test_lock_requires_ready(self, session):
        with pytest.raises(WalletStateError):
            session.lock()


class TestAddAddress:
    def test_mnemonic_add_address(self, ready_session, store, test_mnemonic):
        key = ready_session.add_address()
        assert key == derive_from_mnemonic(test_mnemonic, 1, start_index=5)[0]
        assert len(ready_session.keys) == 6
        assert key.address in ready_session.key_ring

        reopened = _reopen(store)
        reopened.unlock(PASS)
        assert reopened.secrets.next_index == 6
        assert reopened.addresses == ready_session.addresses

    def test_seed_add_address(self, session):
        session.import_seed_backup(json.dumps({"seed": TEST_SEED_HEX}), PASS)
        key = session.add_address()
        assert key.path == "baseline:5"
        assert key == derive_from_raw_seed(TEST_SEED_HEX, 1, start_index=5)[0]

    def test_imported_key_cannot_extend(self, session):
        session.import_encoded_key(FIRST_WIF, PASS)
        with pytest.raises(CannotExtendImportedKey):
            session.add_address()

    def test_failed_persist_keeps_state(self, ready_session, store, monkeypatch):
        before = ready_session.addresses

        def boom(blob):
            raise StorageError("disk full")

        monkeypatch.setattr(store, "persist", boom)
        with pytest.raises(StorageError):
            ready_session.add_address()
        assert ready_session.addresses == before
        assert ready_session.secrets.next_index == 5


class TestClear:
    def test_clear_from_ready(self, ready_session, store):
        ready_session.clear()
        assert ready_session.status == WalletStatus.EMPTY
        assert not store.exists()
        assert ready_session.keys == []

    def test_clear_from_empty(self, session):
        session.clear()
        assert session.status == WalletStatus.EMPTY

    def test_clear_forgets_secrets_when_store_fails(self, ready_session, monkeypatch):
        def failing_clear():
            raise StorageError("disk gone")

        monkeypatch.setattr(ready_session.store, "clear", failing_clear)
        with pytest.raises(StorageError):
            ready_session.clear()
        assert ready_session.status == WalletStatus.EMPTY
        assert ready_session.keys == []
        assert ready_session.key_ring == {}
        assert ready_session.secrets is None


class TestMissingSecrets:
    """READY without loaded secrets is refused rather than half-handled."""

    def test_add_address(self, session):
        session.status = WalletStatus.READY
        with pytest.raises(WalletStateError):
            session.add_address()

    def test_export_backup(self, session):
        session.status = WalletStatus.READY
        with pytest.raises(WalletStateError):
            session.export_backup()


class TestExportBackup:
    def test_mnemonic_backup(self, ready_session, test_mnemonic):
        data = json.loads(ready_session.export_backup())
        assert data["kind"] == "mnemonic"
        assert data["mnemonic"] == test_mnemonic
        assert data["next_index"] == 5
        assert data["addresses"][0] == {"address": FIRST_ADDRESS, "path": "m/44'/0'/0'/0/0"}

    def test_wif_backup(self, session):
        session.import_encoded_key(FIRST_WIF, PASS)
        data = json.loads(session.export_backup())
        assert data == {"kind": "wif", "keys": [{"address": FIRST_ADDRESS, "wif": FIRST_WIF}]}

    def test_seed_backup_reimports(self, session, tmp_path):
        session.import_seed_backup(json.dumps({"seed": TEST_SEED_HEX, "next_index": 6}), PASS)
        exported = session.export_backup()
        data = json.loads(exported)
        assert data["version"] == 1
        assert data["encrypted"] is False
        assert data["seed"] == TEST_SEED_HEX
        assert len(data["addresses"]) == 6
        first = data["addresses"][session.addresses[0]]
        assert first == {"index": 0, "watch_only": False, "label": ""}

        session.clear()
        again = session.import_seed_backup(exported, PASS)
        assert again.next_index == 6

    def test_export_requires_ready(self, session):
        with pytest.raises(WalletStateError):
            session.export_backup()


class TestPersistedConversion:
    def test_mnemonic_roundtrip(self, test_mnemonic, mnemonic_keys):
        secrets = MnemonicSecrets(mnemonic=test_mnemonic, next_index=5, keys=mnemonic_keys)
        assert runtime_from_persisted(to_persisted(secrets)) == secrets

    def test_rederives_at_least_batch(self, test_mnemonic):
        persisted = to_persisted(MnemonicSecrets(mnemonic=test_mnemonic, next_index=2))
        runtime = runtime_from_persisted(persisted)
        assert runtime.next_index == 5
        assert len(runtime.keys) == 5
