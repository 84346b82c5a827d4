"""
PrivateArt - Encrypted Value Store

Opaque encrypted-integer handles with homomorphic-style addition and a
per-handle access-control list.

The ledger only depends on the `EncryptedValueBackend` interface. The
`EncryptedValueStore` below is the in-process backend: every value is held as
an AES-256-GCM ciphertext (bound to its handle as associated data) under a key
that only the store, and through `reveal()` the decryption oracle, can use.
It is not a homomorphic scheme; `add` opens both operands inside the store.

Security Features:
- AES-256-GCM with a fresh 96-bit nonce per ciphertext
- Ciphertext bound to its handle (cannot be swapped between handles)
- Principal-level ACL checked on every user decryption
"""

import logging
import secrets
from abc import ABC, abstractmethod

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from journal import StateJournal
from ledger_exceptions import AuthorizationError, ErrorReason, ValidationError

logger = logging.getLogger(__name__)

# Constants
IV_SIZE = 12  # 96 bits for GCM (recommended)
KEY_BITS = 256
VALUE_BITS = 128  # width of an encrypted integer
VALUE_MODULUS = 2**VALUE_BITS
HANDLE_BYTES = 32


class EncryptedValueBackend(ABC):
    """
    Interface of the encrypted-integer coprocessor.

    All backends must implement these methods so the ledger can remain
    ignorant of the underlying scheme.
    """

    @abstractmethod
    def encrypt(self, plain: int) -> str:
        """Encrypt a plaintext integer, returning an opaque handle."""
        pass

    @abstractmethod
    def add(self, lhs: str, rhs: str) -> str:
        """Return a new handle encrypting lhs + rhs (wrapping)."""
        pass

    @abstractmethod
    def allow(self, handle: str, principal: str) -> None:
        """Grant a principal decrypt-access to a handle."""
        pass

    @abstractmethod
    def is_allowed(self, handle: str, principal: str) -> bool:
        pass

    @abstractmethod
    def decrypt(self, handle: str, principal: str) -> int:
        """
        User decryption.

        Raises:
            AuthorizationError: If the principal was never granted access
        """
        pass

    @abstractmethod
    def reveal(self, handle: str) -> int:
        """Key-holder decryption. Only the decryption oracle calls this."""
        pass


class EncryptedValueStore(EncryptedValueBackend):
    """In-process encrypted value store."""

    def __init__(self, key: bytes | None = None, journal: StateJournal | None = None):
        """
        Initialize the store.

        Args:
            key: Optional 32-byte AES key. A random key is generated if omitted.
            journal: Journal that records new ciphertexts and grants, so a
                reverted call leaves none behind
        """
        self.journal = journal or StateJournal()
        self._aead = AESGCM(key if key is not None else AESGCM.generate_key(bit_length=KEY_BITS))
        self._ciphertexts: dict[str, bytes] = {}
        self._acl: dict[str, set[str]] = {}

    def encrypt(self, plain: int) -> str:
        if not isinstance(plain, int) or plain < 0 or plain >= VALUE_MODULUS:
            raise ValidationError(
                f"Plaintext must be an integer in [0, 2**{VALUE_BITS})",
                reason=ErrorReason.INVALID_AMOUNT,
                component="encrypted_store",
                action="encrypt",
            )
        handle = "0x" + secrets.token_hex(HANDLE_BYTES)
        nonce = secrets.token_bytes(IV_SIZE)
        blob = self._aead.encrypt(nonce, plain.to_bytes(VALUE_BITS // 8, "big"), handle.encode())
        self.journal.set_item(self._ciphertexts, handle, nonce + blob)
        self.journal.set_item(self._acl, handle, set())
        return handle

    def add(self, lhs: str, rhs: str) -> str:
        total = (self._open(lhs) + self._open(rhs)) % VALUE_MODULUS
        return self.encrypt(total)

    def allow(self, handle: str, principal: str) -> None:
        self._require_known(handle)
        self.journal.add(self._acl[handle], principal)

    def is_allowed(self, handle: str, principal: str) -> bool:
        return principal in self._acl.get(handle, ())

    def decrypt(self, handle: str, principal: str) -> int:
        self._require_known(handle)
        if not self.is_allowed(handle, principal):
            raise AuthorizationError(
                "Principal has no access to this handle",
                reason=ErrorReason.ACCESS_DENIED,
                component="encrypted_store",
                action="decrypt",
                details={"principal": principal},
            )
        return self._open(handle)

    def reveal(self, handle: str) -> int:
        return self._open(handle)

    def __contains__(self, handle: str) -> bool:
        return handle in self._ciphertexts

    def __len__(self) -> int:
        return len(self._ciphertexts)

    def _require_known(self, handle: str) -> None:
        if handle not in self._ciphertexts:
            raise ValidationError(
                "Unknown encrypted handle",
                reason=ErrorReason.UNKNOWN_HANDLE,
                component="encrypted_store",
                action="lookup",
                details={"handle": handle},
            )

    def _open(self, handle: str) -> int:
        self._require_known(handle)
        raw = self._ciphertexts[handle]
        try:
            plain = self._aead.decrypt(raw[:IV_SIZE], raw[IV_SIZE:], handle.encode())
        except InvalidTag:
            # tampered storage; nothing a caller can do about it
            logger.error("Ciphertext failed authentication", extra={"handle": handle})
            raise
        return int.from_bytes(plain, "big")
