"""
Pytest configuration and shared fixtures for PrivateArt tests.

This module provides shared fixtures and test configuration including:
- A manually driven block clock
- Ledger instances with an isolated metrics collector
- Ready-made investment scenarios
- Flask test client bound to the same ledger
"""

import os
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from art_investment import PrivateArtInvestment  # noqa: E402
from block_context import ManualBlockContext  # noqa: E402
from config import ETHER, LedgerConfig  # noqa: E402
from monitoring import MetricsCollector  # noqa: E402

OWNER = "0x" + "00" * 19 + "01"
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20
STRANGER = "0x" + "5e" * 20

START_TIME = 1_700_000_000


@pytest.fixture
def block():
    """Block clock starting at a fixed timestamp."""
    return ManualBlockContext(start_timestamp=START_TIME, prevrandao=0xC0FFEE)


@pytest.fixture
def metrics_collector():
    return MetricsCollector()


@pytest.fixture
def contract(block, metrics_collector):
    """Fresh ledger owned by OWNER."""
    return PrivateArtInvestment(
        config=LedgerConfig(owner=OWNER),
        block=block,
        metrics_collector=metrics_collector,
    )


@pytest.fixture
def gateway(contract):
    """The simulated decryption oracle behind `contract`."""
    return contract.oracle


def list_artwork(contract, share_price=ETHER // 10, total_shares=150, name="Abstract Reality"):
    """List an artwork priced per share; returns its id."""
    return contract.list_artwork(
        OWNER,
        name,
        "Contemporary Collective",
        "QmRAQB6YaCyidP37UdDnjFY5vQuiBrcqdyoW1CuDgwxkD4",
        share_price * total_shares,
        share_price,
        total_shares,
    )


def invest(contract, investor, artwork_id, shares, overpay=0):
    """Register (if needed) and buy shares at the listed price."""
    if not contract.is_investor_registered(investor):
        contract.register_investor(investor)
    price = int(contract.get_artwork_info(artwork_id)["share_price"])
    contract.make_private_investment(investor, artwork_id, shares, price * shares + overpay)


@pytest.fixture
def funded_artwork(contract):
    """
    Artwork 0 at 0.1 ETH/share with three positions:
    ALICE 10, BOB 20, CAROL 120 shares.
    """
    artwork_id = list_artwork(contract)
    invest(contract, ALICE, artwork_id, 10)
    invest(contract, BOB, artwork_id, 20)
    invest(contract, CAROL, artwork_id, 120)
    return artwork_id


@pytest.fixture
def flask_app(contract):
    """Flask test app serving `contract`."""
    from api import create_app

    app = create_app(contract)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def flask_client(flask_app):
    """Create Flask test client."""
    return flask_app.test_client()
