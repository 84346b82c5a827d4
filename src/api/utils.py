"""
Shared utilities for the PrivateArt API.

Request parsing, caller extraction and the mapping from ledger exceptions to
HTTP responses. Used by every blueprint.
"""

import re
from functools import wraps
from typing import Any

from flask import g, jsonify, request

from ledger_exceptions import (
    ArtLedgerError,
    AuthorizationError,
    LedgerArithmeticError,
    OracleSubmissionError,
    StateError,
    TransferError,
    ValidationError,
)
from payments import parse_ether

CALLER_HEADER = "X-Caller-Address"

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

# Checked in order; subclasses before the base class
STATUS_CODES: list[tuple[type, int]] = [
    (ValidationError, 400),
    (AuthorizationError, 403),
    (StateError, 409),
    (LedgerArithmeticError, 422),
    (TransferError, 502),
    (OracleSubmissionError, 503),
]

MAX_NAME_LENGTH = 200
MAX_METADATA_LENGTH = 500


class RequestParseError(ValueError):
    """A request body or header could not be interpreted."""


# ============================================================
# Validation Utilities
# ============================================================

def validate_json_schema(
    data: dict[str, Any],
    required_fields: dict[str, type | tuple],
    optional_fields: dict[str, type | tuple] | None = None,
    max_lengths: dict[str, int] | None = None
) -> tuple:
    """
    Validate a JSON payload against a simple schema.

    Args:
        data: The JSON data to validate
        required_fields: Dict mapping field names to expected types
        optional_fields: Dict mapping optional field names to expected types
        max_lengths: Dict mapping field names to maximum string lengths

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    for field_name, expected_type in required_fields.items():
        if field_name not in data:
            return False, f"Missing required field: {field_name}"
        if not _is_instance(data[field_name], expected_type):
            return False, f"Field '{field_name}' has the wrong type"

    if optional_fields:
        for field_name, expected_type in optional_fields.items():
            if data.get(field_name) is not None and not _is_instance(data[field_name], expected_type):
                return False, f"Field '{field_name}' has the wrong type"

    if max_lengths:
        for field_name, max_len in max_lengths.items():
            if isinstance(data.get(field_name), str) and len(data[field_name]) > max_len:
                return False, f"Field '{field_name}' exceeds maximum length of {max_len}"

    return True, None


def _is_instance(value: Any, expected_type: type | tuple) -> bool:
    # bool is an int subclass; never accept it where a number is expected
    if isinstance(value, bool) and expected_type is not bool:
        return False
    return isinstance(value, expected_type)


def parse_amount(data: dict[str, Any], wei_field: str, ether_field: str, required: bool = True) -> int:
    """
    Read an amount given either in wei (int or decimal string) or in ether.

    Raises:
        RequestParseError: If neither field is present (and required) or the value is malformed
    """
    if data.get(wei_field) is not None:
        raw = data[wei_field]
        if isinstance(raw, bool) or not isinstance(raw, (int, str)):
            raise RequestParseError(f"Field '{wei_field}' must be an integer or decimal string")
        try:
            value = int(raw)
        except ValueError as e:
            raise RequestParseError(f"Field '{wei_field}' is not an integer") from e
    elif data.get(ether_field) is not None:
        try:
            value = parse_ether(data[ether_field])
        except ValueError as e:
            raise RequestParseError(str(e)) from e
    elif required:
        raise RequestParseError(f"Missing required field: {wei_field} or {ether_field}")
    else:
        return 0

    if value < 0:
        raise RequestParseError("Amounts cannot be negative")
    return value


def parse_hex(value: Any, field_name: str) -> bytes:
    """Decode a 0x-prefixed (or bare) hex string."""
    if not isinstance(value, str):
        raise RequestParseError(f"Field '{field_name}' must be a hex string")
    text = value[2:] if value.startswith("0x") else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise RequestParseError(f"Field '{field_name}' is not valid hex") from e


# ============================================================
# Caller Identity
# ============================================================

def require_caller(f):
    """Decorator: the acting address comes from the X-Caller-Address header."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        caller = request.headers.get(CALLER_HEADER, "").strip()
        if not caller:
            return jsonify({
                "error": "Caller address required",
                "hint": f"Provide the acting address in the {CALLER_HEADER} header"
            }), 401
        if not ADDRESS_PATTERN.match(caller):
            return jsonify({"error": "Malformed caller address"}), 400
        g.caller = caller
        return f(*args, **kwargs)
    return decorated_function


# ============================================================
# Error Responses
# ============================================================

def status_for(error: ArtLedgerError) -> int:
    for error_type, status in STATUS_CODES:
        if isinstance(error, error_type):
            return status
    return 500


def ledger_error_response(error: ArtLedgerError):
    """JSON body and status for a rejected ledger operation."""
    return jsonify({
        "error": error.message,
        "reason": error.reason.value,
        "error_type": type(error).__name__,
    }), status_for(error)


def parse_error_response(error: RequestParseError):
    return jsonify({"error": str(error), "reason": "invalid_request"}), 400
