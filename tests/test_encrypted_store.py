"""
Tests for the encrypted value store.

These tests verify that:
1. Values only come back out for principals that were granted access
2. Homomorphic addition wraps at the value width
3. Ciphertexts are bound to their handle
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from encrypted_store import VALUE_MODULUS, EncryptedValueStore
from journal import StateJournal
from ledger_exceptions import AuthorizationError, ErrorReason, ValidationError

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


@pytest.fixture
def store():
    return EncryptedValueStore()


class TestEncryptDecrypt:
    """Tests for basic encryption and ACL-checked decryption."""

    def test_handle_format(self, store):
        handle = store.encrypt(5)

        assert handle.startswith("0x")
        assert len(handle) == 66
        assert handle in store

    def test_handles_unique(self, store):
        handles = {store.encrypt(5) for _ in range(20)}
        assert len(handles) == 20

    def test_granted_principal_decrypts(self, store):
        handle = store.encrypt(42)
        store.allow(handle, ALICE)

        assert store.decrypt(handle, ALICE) == 42

    def test_ungranted_principal_rejected(self, store):
        handle = store.encrypt(42)
        store.allow(handle, ALICE)

        with pytest.raises(AuthorizationError) as exc_info:
            store.decrypt(handle, BOB)
        assert exc_info.value.reason == ErrorReason.ACCESS_DENIED

    def test_no_grants_by_default(self, store):
        handle = store.encrypt(1)
        assert not store.is_allowed(handle, ALICE)

    def test_unknown_handle(self, store):
        with pytest.raises(ValidationError) as exc_info:
            store.decrypt("0x" + "00" * 32, ALICE)
        assert exc_info.value.reason == ErrorReason.UNKNOWN_HANDLE

        with pytest.raises(ValidationError):
            store.allow("0xdead", ALICE)

    @pytest.mark.parametrize("value", [-1, VALUE_MODULUS, "10", 1.5])
    def test_out_of_range_rejected(self, store, value):
        with pytest.raises(ValidationError) as exc_info:
            store.encrypt(value)
        assert exc_info.value.reason == ErrorReason.INVALID_AMOUNT

    def test_reveal_ignores_acl(self, store):
        handle = store.encrypt(7)
        assert store.reveal(handle) == 7

    def test_fixed_key(self):
        key = AESGCM.generate_key(bit_length=256)
        store = EncryptedValueStore(key=key)

        assert store.reveal(store.encrypt(3)) == 3


class TestAdd:
    """Tests for homomorphic addition."""

    def test_add(self, store):
        total = store.add(store.encrypt(10), store.encrypt(32))
        assert store.reveal(total) == 42

    def test_add_returns_fresh_handle(self, store):
        lhs = store.encrypt(1)
        rhs = store.encrypt(2)
        total = store.add(lhs, rhs)

        assert total not in (lhs, rhs)
        assert store.reveal(lhs) == 1

    def test_add_wraps(self, store):
        total = store.add(store.encrypt(VALUE_MODULUS - 1), store.encrypt(2))
        assert store.reveal(total) == 1

    def test_result_has_no_grants(self, store):
        lhs = store.encrypt(1)
        store.allow(lhs, ALICE)
        total = store.add(lhs, store.encrypt(1))

        assert not store.is_allowed(total, ALICE)


class TestIntegrity:
    """Tests for ciphertext binding and journaling."""

    def test_swapped_ciphertext_fails(self, store):
        a = store.encrypt(1)
        b = store.encrypt(2)
        store._ciphertexts[a], store._ciphertexts[b] = store._ciphertexts[b], store._ciphertexts[a]

        with pytest.raises(InvalidTag):
            store.reveal(a)

    def test_reverted_frame_drops_ciphertexts_and_grants(self):
        journal = StateJournal()
        store = EncryptedValueStore(journal=journal)
        kept = store.encrypt(1)

        with pytest.raises(RuntimeError):
            with journal.atomic():
                dropped = store.encrypt(2)
                store.allow(kept, ALICE)
                raise RuntimeError("revert")

        assert kept in store
        assert dropped not in store
        assert not store.is_allowed(kept, ALICE)
        assert len(store) == 1
