"""
Shared state for the PrivateArt API.

Holds the single ledger instance served by every blueprint. `create_app`
installs it; blueprints read it through `get_contract()`.
"""

from art_investment import PrivateArtInvestment

# The ledger instance
contract: PrivateArtInvestment | None = None


def set_contract(instance: PrivateArtInvestment) -> None:
    global contract
    contract = instance


def get_contract() -> PrivateArtInvestment:
    if contract is None:
        raise RuntimeError("No ledger installed; call create_app() first")
    return contract
