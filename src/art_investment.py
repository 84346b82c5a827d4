"""
PrivateArt - Private Art Investment Ledger

Fractional investment in artworks with encrypted positions and asynchronous,
oracle-mediated profit distribution.

Flow:
1. Owner lists artworks; investors register and buy shares privately
2. Owner attaches returns to a distribution request; share handles go to the oracle
3. The oracle calls back with decrypted share counts  -> proportional payouts
   or it stays silent                                   -> refund after 24h
   (the owner may force a refund within 7 days)

Every public operation is atomic: it either completes or leaves no trace,
including emitted events and value movements. Each request is resolved by
exactly one of {distribution, timeout refund, emergency refund}.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any

from block_context import BlockContext, SystemBlockContext
from config import LedgerConfig
from decryption_oracle import DecryptionOracle, SimulatedGateway
from decryption_requests import ClaimRegistry, DecryptionRequest, DecryptionRequestManager, RequestState
from encrypted_store import EncryptedValueBackend, EncryptedValueStore
from events import EventLog
from journal import StateJournal
from ledger import InvestmentLedger
from ledger_exceptions import ArtLedgerError, TransferError, log_exception
from monitoring import LoggingContext, MetricsCollector, metrics
from payments import ValueTransferLayer
from refund_safety_net import RefundResult, RefundSafetyNet
from returns_distribution import DistributionResult, ReturnsDistributionEngine

logger = logging.getLogger(__name__)


class PrivateArtInvestment:
    """
    The ledger as one deployable unit.

    Key Design Principles:
    - One instance per deployment; state is never reset
    - Calls are serialized; each runs to completion in one journal frame
    - Gating state (claims, request state) is written before any payment
    """

    def __init__(
        self,
        config: LedgerConfig | None = None,
        block: BlockContext | None = None,
        store: EncryptedValueBackend | None = None,
        oracle: DecryptionOracle | None = None,
        metrics_collector: MetricsCollector | None = None,
    ):
        """
        Initialize the ledger.

        Args:
            config: Deployment configuration (owner, refund windows)
            block: Source of timestamps and randomness
            store: Encrypted value backend; a supplied backend keeps its own state
                out of the journal
            oracle: Decryption oracle; a SimulatedGateway over `store` by default
            metrics_collector: Metrics sink, defaults to the global collector
        """
        self.config = config or LedgerConfig()
        self.block = block or SystemBlockContext()
        self.journal = StateJournal()
        self.store = store or EncryptedValueStore(journal=self.journal)
        self.oracle = oracle or SimulatedGateway(self.store)
        self.metrics = metrics_collector or metrics

        self.events = EventLog(block=self.block, journal=self.journal)
        self.payments = ValueTransferLayer(self.journal, self.config.contract_address)
        self.ledger = InvestmentLedger(
            owner=self.config.owner,
            contract_address=self.config.contract_address,
            store=self.store,
            payments=self.payments,
            events=self.events,
            block=self.block,
            journal=self.journal,
        )
        self.claims = ClaimRegistry(self.journal)
        self.requests = DecryptionRequestManager(
            ledger=self.ledger,
            oracle=self.oracle,
            payments=self.payments,
            events=self.events,
            block=self.block,
            journal=self.journal,
            claims=self.claims,
        )
        self.distribution = ReturnsDistributionEngine.for_manager(self.requests)
        self.safety_net = RefundSafetyNet(
            manager=self.requests,
            payments=self.payments,
            events=self.events,
            block=self.block,
            callback_timeout=self.config.callback_timeout,
            max_refund_window=self.config.max_refund_window,
        )

        self._lock = threading.RLock()

    @property
    def owner(self) -> str:
        return self.ledger.owner

    @property
    def address(self) -> str:
        return self.config.contract_address

    # =========================================================================
    # Ledger operations
    # =========================================================================

    def register_investor(self, caller: str) -> None:
        with self._call("register_investor", caller):
            self.ledger.register_investor(caller)

    def list_artwork(
        self,
        caller: str,
        name: str,
        artist: str,
        metadata_ref: str,
        total_value: int,
        share_price: int,
        total_shares: int,
    ) -> int:
        """List an artwork. Returns its id."""
        with self._call("list_artwork", caller):
            artwork = self.ledger.list_artwork(
                caller, name, artist, metadata_ref, total_value, share_price, total_shares
            )
        return artwork.id

    def make_private_investment(self, caller: str, artwork_id: int, share_amount: int, value: int) -> None:
        """Buy shares; `value` is the attached payment, any excess is returned."""
        with self._call("make_private_investment", caller, value=value):
            self.ledger.make_private_investment(caller, artwork_id, share_amount, value)

    def mark_artwork_sold(self, caller: str, artwork_id: int) -> None:
        with self._call("mark_artwork_sold", caller):
            self.ledger.mark_artwork_sold(caller, artwork_id)

    # =========================================================================
    # Decryption protocol
    # =========================================================================

    def request_returns_distribution(self, caller: str, artwork_id: int, value: int) -> int:
        """
        Start a distribution of `value` (the attached returns) for an artwork.

        Returns:
            The oracle-issued request id
        """
        with self._call("request_returns_distribution", caller, value=value):
            request = self.requests.request_returns_distribution(
                caller, artwork_id, value, callback=self._oracle_callback
            )
        self.metrics.increment("decryption_requests_total")
        self._update_pending_gauge()
        return request.id

    def process_returns_distribution(
        self,
        request_id: int,
        cleartexts: bytes,
        proof: bytes,
        caller: str = "oracle",
    ) -> DistributionResult:
        """Oracle callback. Anyone may relay it; the proof is what counts."""
        with self._call("process_returns_distribution", caller):
            result = self.requests.process_returns_distribution(request_id, cleartexts, proof)
        self.metrics.increment("distributions_total")
        self._update_pending_gauge()
        return result

    def request_refund_for_failed_decryption(self, caller: str, request_id: int) -> RefundResult:
        with self._call("request_refund_for_failed_decryption", caller):
            result = self.safety_net.request_refund_for_failed_decryption(caller, request_id)
        self._record_refund(result, "timeout")
        return result

    def emergency_refund(self, caller: str, request_id: int) -> RefundResult:
        with self._call("emergency_refund", caller):
            result = self.safety_net.emergency_refund(caller, request_id)
        self._record_refund(result, "emergency")
        return result

    # =========================================================================
    # Queries
    # =========================================================================

    def get_artwork_info(self, artwork_id: int) -> dict[str, Any]:
        return self.ledger.get_artwork_info(artwork_id).to_dict()

    def is_investor_registered(self, address: str) -> bool:
        return self.ledger.is_investor_registered(address)

    def get_investment_status(self, address: str, artwork_id: int) -> tuple[bool, int]:
        return self.ledger.get_investment_status(address, artwork_id)

    def get_artwork_investor_count(self, artwork_id: int) -> int:
        return self.ledger.get_artwork_investor_count(artwork_id)

    def get_total_stats(self) -> dict[str, int]:
        return self.ledger.get_total_stats()

    def get_encrypted_investment(self, caller: str, artwork_id: int) -> tuple[str, str]:
        return self.ledger.get_encrypted_investment(caller, artwork_id)

    def get_encrypted_portfolio(self, caller: str) -> tuple[str, str]:
        return self.ledger.get_encrypted_portfolio(caller)

    def decrypt_handle(self, caller: str, handle: str) -> int:
        """User decryption of a handle the caller was granted."""
        return self.store.decrypt(handle, caller)

    def get_request(self, request_id: int) -> DecryptionRequest:
        return self.requests.get_request(request_id)

    def get_request_state(self, request_id: int) -> RequestState:
        return self.requests.get_request(request_id).state

    def is_claimed(self, artwork_id: int, investor: str) -> bool:
        return self.claims.is_claimed(artwork_id, investor)

    def get_balance(self) -> dict[str, Any]:
        return self.payments.get_balance()

    # =========================================================================
    # Internal Methods
    # =========================================================================

    @contextmanager
    def _call(self, action: str, caller: str, value: int = 0):
        """One serialized, all-or-nothing call frame."""
        with self._lock, LoggingContext(action=action, caller=caller):
            try:
                with self.journal.atomic(action):
                    if value:
                        self.payments.receive(caller, value)
                    yield
            except ArtLedgerError as e:
                self.metrics.increment("operations_rejected_total", labels={"reason": e.reason.value})
                if isinstance(e, TransferError):
                    self.metrics.increment("transfer_failures_total")
                log_exception(logger, e, level="info")
                raise

    def _oracle_callback(self, request_id: int, cleartexts: bytes, proof: bytes) -> DistributionResult:
        return self.process_returns_distribution(request_id, cleartexts, proof)

    def _record_refund(self, result: RefundResult, path: str) -> None:
        self.metrics.increment("refunds_total", labels={"path": path})
        if result.failed:
            self.metrics.increment("transfer_failures_total", value=len(result.failed))
        self._update_pending_gauge()

    def _update_pending_gauge(self) -> None:
        pending = sum(1 for r in self.requests.requests.values() if r.is_pending)
        self.metrics.set_gauge("pending_requests", pending)
