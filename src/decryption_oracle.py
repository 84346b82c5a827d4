"""
PrivateArt - Decryption Oracle Interface

The decryption oracle (gateway) is an external, untrusted, possibly silent
party. The ledger hands it a batch of encrypted handles and gets back a
request id; some time later (or never) the oracle calls back with the ordered
cleartexts and a signature proving it produced them for that request.

Wire format:
- cleartexts: concatenated 32-byte big-endian unsigned words, one per handle,
  in the order the handles were submitted
- proof: Ed25519 signature over sha256(request_id as a 32-byte word || cleartexts)

`SimulatedGateway` is an in-process oracle that queues requests instead of
answering them, so callers can deliver, delay or drop each callback.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from encrypted_store import EncryptedValueBackend
from ledger_exceptions import ErrorReason, OracleSubmissionError, StateError, ValidationError

logger = logging.getLogger(__name__)

WORD_SIZE = 32

DecryptionCallback = Callable[[int, bytes, bytes], object]


def encode_cleartexts(values: list[int]) -> bytes:
    """Encode plaintext values as consecutive 32-byte words."""
    return b"".join(v.to_bytes(WORD_SIZE, "big") for v in values)


def decode_cleartexts(data: bytes) -> list[int]:
    """
    Decode consecutive 32-byte words.

    Raises:
        ValidationError: If the payload is not a whole number of words
    """
    if len(data) % WORD_SIZE != 0:
        raise ValidationError(
            "Cleartext payload is not a whole number of words",
            reason=ErrorReason.SHAPE_MISMATCH,
            component="oracle",
            action="decode_cleartexts",
            details={"length": len(data)},
        )
    return [
        int.from_bytes(data[i:i + WORD_SIZE], "big")
        for i in range(0, len(data), WORD_SIZE)
    ]


def proof_digest(request_id: int, cleartexts: bytes) -> bytes:
    """The message an oracle signs for a callback."""
    return hashlib.sha256(request_id.to_bytes(WORD_SIZE, "big") + cleartexts).digest()


class ProofVerifier:
    """Checks callback proofs against the oracle's public key."""

    def __init__(self, public_key: Ed25519PublicKey):
        self.public_key = public_key

    @classmethod
    def from_public_bytes(cls, public_key_bytes: bytes) -> "ProofVerifier":
        return cls(Ed25519PublicKey.from_public_bytes(public_key_bytes))

    def verify(self, request_id: int, cleartexts: bytes, proof: bytes) -> None:
        """
        Raises:
            ValidationError: If the proof does not match (request_id, cleartexts)
        """
        try:
            self.public_key.verify(proof, proof_digest(request_id, cleartexts))
        except (InvalidSignature, ValueError, TypeError) as e:
            raise ValidationError(
                "Decryption proof verification failed",
                reason=ErrorReason.INVALID_PROOF,
                component="oracle",
                action="verify_proof",
                details={"request_id": request_id},
                cause=e,
            ) from e


class DecryptionOracle(ABC):
    """Interface for submitting batch decryption requests."""

    @abstractmethod
    def request_decryption(self, handles: list[str], callback: DecryptionCallback) -> int:
        """
        Submit handles for decryption.

        Returns immediately with the request id. The callback is invoked later
        as callback(request_id, cleartexts, proof), or never.

        Raises:
            OracleSubmissionError: If the request is not accepted
        """
        pass

    @abstractmethod
    def verifier(self) -> ProofVerifier:
        """Verifier for proofs produced by this oracle."""
        pass


@dataclass
class QueuedRequest:
    """A decryption request waiting in the simulated gateway."""
    request_id: int
    handles: list[str]
    callback: DecryptionCallback
    dropped: bool = False


class SimulatedGateway(DecryptionOracle):
    """
    In-process oracle that answers only when told to.

    Usage:
        gateway = SimulatedGateway(store)
        contract = PrivateArtInvestment(oracle=gateway, ...)
        request_id = contract.request_returns_distribution(owner, 0, value)
        gateway.fulfill(request_id)      # deliver the callback
        gateway.drop(request_id)         # or never answer
    """

    def __init__(self, store: EncryptedValueBackend, signing_key: Ed25519PrivateKey | None = None):
        self.store = store
        self._signing_key = signing_key or Ed25519PrivateKey.generate()
        self._next_id = 1
        self._queue: dict[int, QueuedRequest] = {}
        self._fail_next = False

    def verifier(self) -> ProofVerifier:
        return ProofVerifier(self._signing_key.public_key())

    def request_decryption(self, handles: list[str], callback: DecryptionCallback) -> int:
        if self._fail_next:
            self._fail_next = False
            raise OracleSubmissionError("Gateway rejected the decryption request", details={"handles": len(handles)})
        if not handles:
            raise OracleSubmissionError("Empty decryption batch")

        request_id = self._next_id
        self._next_id += 1
        self._queue[request_id] = QueuedRequest(request_id=request_id, handles=list(handles), callback=callback)
        logger.info("Decryption request queued", extra={"request_id": request_id, "batch_size": len(handles)})
        return request_id

    def fail_next_submission(self) -> None:
        """Make the next request_decryption call raise."""
        self._fail_next = True

    def pending_requests(self) -> list[int]:
        return [rid for rid, q in self._queue.items() if not q.dropped]

    def drop(self, request_id: int) -> None:
        """Never answer this request."""
        self._queue[request_id].dropped = True

    def sign(self, request_id: int, cleartexts: bytes) -> bytes:
        return self._signing_key.sign(proof_digest(request_id, cleartexts))

    def answer(self, request_id: int) -> tuple[bytes, bytes]:
        """Decrypt a queued request without delivering it."""
        queued = self._queue[request_id]
        cleartexts = encode_cleartexts([self.store.reveal(h) for h in queued.handles])
        return cleartexts, self.sign(request_id, cleartexts)

    def fulfill(self, request_id: int):
        """
        Decrypt and deliver the callback for one request.

        The request leaves the queue if the callback succeeds, or if the
        ledger reports it already finalized (e.g. refunded after a timeout).
        """
        queued = self._queue[request_id]
        cleartexts, proof = self.answer(request_id)
        try:
            result = queued.callback(request_id, cleartexts, proof)
        except StateError as e:
            if e.reason == ErrorReason.ALREADY_FINALIZED:
                del self._queue[request_id]
            raise
        del self._queue[request_id]
        return result

    def fulfill_all(self) -> list[int]:
        """
        Deliver every pending, non-dropped request. Returns delivered ids.

        Requests the ledger has already finalized are discarded and skipped.
        """
        delivered = []
        for request_id in self.pending_requests():
            try:
                self.fulfill(request_id)
            except StateError as e:
                if e.reason != ErrorReason.ALREADY_FINALIZED:
                    raise
                logger.info("Discarded finalized request", extra={"request_id": request_id})
                continue
            delivered.append(request_id)
        return delivered
