"""
PrivateArt - Configuration

Environment Variables:
    PRIVATEART_OWNER=0x...                 Ledger owner address
    PRIVATEART_CONTRACT_ADDRESS=0x...      Address the ledger holds funds under
    PRIVATEART_CALLBACK_TIMEOUT=86400      Seconds before anyone may trigger a refund
    PRIVATEART_MAX_REFUND_WINDOW=604800    Seconds during which the owner may force a refund
    LOG_LEVEL=INFO
    LOG_FORMAT=json|console
    HOST=0.0.0.0
    PORT=5000
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

ETHER = 10**18
UINT256_MAX = 2**256 - 1

CALLBACK_TIMEOUT = 24 * 60 * 60
MAX_REFUND_WINDOW = 7 * 24 * 60 * 60

DEFAULT_OWNER = "0x" + "00" * 19 + "01"
DEFAULT_CONTRACT_ADDRESS = "0x" + "a7" * 20


@dataclass
class LedgerConfig:
    """Configuration for a ledger deployment."""

    owner: str = DEFAULT_OWNER
    contract_address: str = DEFAULT_CONTRACT_ADDRESS

    # Safety-net windows (seconds)
    callback_timeout: int = CALLBACK_TIMEOUT
    max_refund_window: int = MAX_REFUND_WINDOW

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 5000

    def __post_init__(self):
        if self.callback_timeout <= 0 or self.max_refund_window <= 0:
            raise ValueError("Refund windows must be positive")
        if self.callback_timeout > self.max_refund_window:
            raise ValueError("callback_timeout must not exceed max_refund_window")

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Create configuration from environment variables (and a .env file)."""
        load_dotenv()
        return cls(
            owner=os.getenv("PRIVATEART_OWNER", DEFAULT_OWNER),
            contract_address=os.getenv("PRIVATEART_CONTRACT_ADDRESS", DEFAULT_CONTRACT_ADDRESS),
            callback_timeout=int(os.getenv("PRIVATEART_CALLBACK_TIMEOUT", str(CALLBACK_TIMEOUT))),
            max_refund_window=int(os.getenv("PRIVATEART_MAX_REFUND_WINDOW", str(MAX_REFUND_WINDOW))),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "console").lower(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "5000")),
        )
