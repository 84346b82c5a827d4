"""
Private art investment API blueprint.

Endpoints:
- Investor registration and status
- Artwork listing, lookup and sale
- Private investments (share counts never appear in responses)
- Returns distribution requests and the oracle callback
- Timeout and emergency refunds

The acting address is taken from the X-Caller-Address header. Amounts are
accepted in wei (`*_wei`, integer or decimal string) or in ether and are
always returned as wei strings.
"""

from flask import Blueprint, g, jsonify, request

from ledger_exceptions import ArtLedgerError

from .state import get_contract
from .utils import (
    ADDRESS_PATTERN,
    CALLER_HEADER,
    MAX_METADATA_LENGTH,
    MAX_NAME_LENGTH,
    RequestParseError,
    ledger_error_response,
    parse_amount,
    parse_error_response,
    parse_hex,
    require_caller,
    validate_json_schema,
)

# Create the blueprint
investment_bp = Blueprint("investment", __name__)


# ============================================================
# Investors
# ============================================================

@investment_bp.route("/investors", methods=["POST"])
@require_caller
def register_investor():
    """Register the caller as an investor."""
    contract = get_contract()
    try:
        contract.register_investor(g.caller)
    except ArtLedgerError as e:
        return ledger_error_response(e)
    return jsonify({"status": "registered", "investor": g.caller}), 201


@investment_bp.route("/investors/<address>", methods=["GET"])
def get_investor(address: str):
    """
    Registration and per-artwork investment status of an address.

    When the caller is the investor, the encrypted portfolio handles are
    included too.
    """
    if not ADDRESS_PATTERN.match(address):
        return jsonify({"error": "Malformed address"}), 400

    contract = get_contract()
    registered = contract.is_investor_registered(address)
    investments = []
    for artwork_id in range(contract.get_total_stats()["total_artworks"]):
        invested, timestamp = contract.get_investment_status(address, artwork_id)
        if invested:
            investments.append({"artwork_id": artwork_id, "timestamp": timestamp})

    body = {"address": address, "registered": registered, "investments": investments}
    if registered and request.headers.get(CALLER_HEADER, "").strip() == address:
        total_invested, portfolio_count = contract.get_encrypted_portfolio(address)
        body["encrypted_portfolio"] = {
            "total_invested": total_invested,
            "portfolio_count": portfolio_count,
        }
    return jsonify(body)


# ============================================================
# Artworks
# ============================================================

@investment_bp.route("/artworks", methods=["POST"])
@require_caller
def list_artwork():
    """
    List an artwork. Owner only.

    Request body:
    {
        "name": "Starry Night Reproduction",
        "artist": "Vincent van Gogh",
        "metadata_ref": "QmXyZ...",
        "total_value": "10",           (ether; or total_value_wei)
        "share_price": "0.1",          (ether; or share_price_wei)
        "total_shares": 100
    }
    """
    data = request.get_json(silent=True)
    is_valid, error = validate_json_schema(
        data,
        required_fields={"name": str, "total_shares": int},
        optional_fields={"artist": str, "metadata_ref": str},
        max_lengths={"name": MAX_NAME_LENGTH, "artist": MAX_NAME_LENGTH, "metadata_ref": MAX_METADATA_LENGTH},
    )
    if not is_valid:
        return jsonify({"error": error}), 400

    try:
        total_value = parse_amount(data, "total_value_wei", "total_value")
        share_price = parse_amount(data, "share_price_wei", "share_price")
    except RequestParseError as e:
        return parse_error_response(e)

    contract = get_contract()
    try:
        artwork_id = contract.list_artwork(
            g.caller,
            data["name"],
            data.get("artist", ""),
            data.get("metadata_ref", ""),
            total_value,
            share_price,
            data["total_shares"],
        )
    except ArtLedgerError as e:
        return ledger_error_response(e)
    return jsonify({"artwork_id": artwork_id, "artwork": contract.get_artwork_info(artwork_id)}), 201


@investment_bp.route("/artworks/<int:artwork_id>", methods=["GET"])
def get_artwork(artwork_id: int):
    contract = get_contract()
    try:
        artwork = contract.get_artwork_info(artwork_id)
        artwork["investor_count"] = contract.get_artwork_investor_count(artwork_id)
    except ArtLedgerError as e:
        return ledger_error_response(e)
    return jsonify(artwork)


@investment_bp.route("/artworks/<int:artwork_id>/sold", methods=["POST"])
@require_caller
def mark_sold(artwork_id: int):
    """Deactivate an artwork after its sale. Owner only."""
    contract = get_contract()
    try:
        contract.mark_artwork_sold(g.caller, artwork_id)
    except ArtLedgerError as e:
        return ledger_error_response(e)
    return jsonify({"status": "sold", "artwork": contract.get_artwork_info(artwork_id)})


@investment_bp.route("/artworks/<int:artwork_id>/investments", methods=["POST"])
@require_caller
def invest(artwork_id: int):
    """
    Buy shares privately.

    Request body:
    {
        "share_amount": 10,
        "value": "1.0"          (attached payment in ether; or value_wei)
    }

    Any payment above share_price * share_amount is returned to the caller.
    """
    data = request.get_json(silent=True)
    is_valid, error = validate_json_schema(data, required_fields={"share_amount": int})
    if not is_valid:
        return jsonify({"error": error}), 400

    try:
        value = parse_amount(data, "value_wei", "value")
    except RequestParseError as e:
        return parse_error_response(e)

    contract = get_contract()
    try:
        contract.make_private_investment(g.caller, artwork_id, data["share_amount"], value)
    except ArtLedgerError as e:
        return ledger_error_response(e)

    encrypted_shares, encrypted_value = contract.get_encrypted_investment(g.caller, artwork_id)
    return jsonify({
        "status": "invested",
        "artwork_id": artwork_id,
        "encrypted_shares": encrypted_shares,
        "encrypted_value": encrypted_value,
    }), 201


# ============================================================
# Statistics
# ============================================================

@investment_bp.route("/stats", methods=["GET"])
def get_stats():
    contract = get_contract()
    balance = contract.get_balance()
    return jsonify({
        **contract.get_total_stats(),
        "balance": {k: str(v) for k, v in balance.items()},
    })


# ============================================================
# Returns distribution
# ============================================================

@investment_bp.route("/artworks/<int:artwork_id>/distributions", methods=["POST"])
@require_caller
def request_distribution(artwork_id: int):
    """
    Attach returns to an artwork and ask the oracle to decrypt its share counts.

    Request body:
    {
        "returns": "15"          (ether; or returns_wei)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        total_returns = parse_amount(data, "returns_wei", "returns")
    except RequestParseError as e:
        return parse_error_response(e)

    contract = get_contract()
    try:
        request_id = contract.request_returns_distribution(g.caller, artwork_id, total_returns)
    except ArtLedgerError as e:
        return ledger_error_response(e)
    return jsonify({
        "request_id": request_id,
        "request": contract.get_request(request_id).to_dict(),
        "refundable_at": contract.safety_net.refundable_at(request_id),
        "emergency_window_end": contract.safety_net.emergency_window_end(request_id),
    }), 202


@investment_bp.route("/requests/<int:request_id>", methods=["GET"])
def get_request_status(request_id: int):
    contract = get_contract()
    try:
        decryption_request = contract.get_request(request_id)
    except ArtLedgerError as e:
        return ledger_error_response(e)
    return jsonify({
        **decryption_request.to_dict(),
        "refundable_at": contract.safety_net.refundable_at(request_id),
        "emergency_window_end": contract.safety_net.emergency_window_end(request_id),
    })


@investment_bp.route("/requests/<int:request_id>/callback", methods=["POST"])
def oracle_callback(request_id: int):
    """
    Deliver the oracle's decrypted share counts.

    Request body:
    {
        "cleartexts": "0x...",   (concatenated 32-byte words)
        "proof": "0x..."         (oracle signature)
    }

    Anyone may relay a callback; the proof is what authorizes it.
    """
    data = request.get_json(silent=True)
    is_valid, error = validate_json_schema(data, required_fields={"cleartexts": str, "proof": str})
    if not is_valid:
        return jsonify({"error": error}), 400

    try:
        cleartexts = parse_hex(data["cleartexts"], "cleartexts")
        proof = parse_hex(data["proof"], "proof")
    except RequestParseError as e:
        return parse_error_response(e)

    contract = get_contract()
    relayer = request.headers.get(CALLER_HEADER, "").strip() or "oracle"
    try:
        result = contract.process_returns_distribution(request_id, cleartexts, proof, caller=relayer)
    except ArtLedgerError as e:
        return ledger_error_response(e)
    return jsonify({"status": "processed", "distribution": result.to_dict()})


# ============================================================
# Refunds
# ============================================================

@investment_bp.route("/requests/<int:request_id>/refund", methods=["POST"])
@require_caller
def refund(request_id: int):
    """Refund a request whose callback timed out. Callable by anyone."""
    contract = get_contract()
    try:
        result = contract.request_refund_for_failed_decryption(g.caller, request_id)
    except ArtLedgerError as e:
        return ledger_error_response(e)
    return jsonify({"status": "refunded", "refund": result.to_dict()})


@investment_bp.route("/requests/<int:request_id>/emergency-refund", methods=["POST"])
@require_caller
def emergency_refund(request_id: int):
    """Owner-forced refund while the refund window is open."""
    contract = get_contract()
    try:
        result = contract.emergency_refund(g.caller, request_id)
    except ArtLedgerError as e:
        return ledger_error_response(e)
    return jsonify({"status": "refunded", "refund": result.to_dict()})
