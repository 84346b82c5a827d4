"""
PrivateArt API Package.

Flask blueprints exposing the private art investment ledger over HTTP.

Blueprints:
- investment: investors, artworks, investments, distributions, refunds
- monitoring: health checks and metrics
"""

from flask import Flask

from api import state
from api.investment import investment_bp
from api.monitoring import monitoring_bp
from art_investment import PrivateArtInvestment
from config import LedgerConfig
from monitoring.middleware import setup_request_logging

# Tuple format: (blueprint, url_prefix)
ALL_BLUEPRINTS = [
    (investment_bp, ''),
    (monitoring_bp, ''),
]


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    for blueprint, url_prefix in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=url_prefix)


def create_app(contract: PrivateArtInvestment | None = None, config: LedgerConfig | None = None) -> Flask:
    """
    Build the Flask application around one ledger instance.

    Args:
        contract: Ledger to serve; a fresh one from `config` if omitted
        config: Used only when `contract` is omitted
    """
    if contract is None:
        contract = PrivateArtInvestment(config=config or LedgerConfig.from_env())
    state.set_contract(contract)

    app = Flask(__name__)
    register_blueprints(app)
    setup_request_logging(app)
    return app
