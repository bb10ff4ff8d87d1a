# ============================================================================
# Balance Sync v1.0.0
# Response Parser - Poloniex JSON to Domain Records
# ============================================================================
#
# Purpose: Decodes trading API response bodies into Account and Transaction
#          records using pydantic schemas
#
# MANDATE:
#   - Embedded {"error": ...} payloads are detected BEFORE structural
#     decoding; an error payload never decodes as "zero accounts"
#   - All amounts converted via DecimalGateway (8 decimal places)
#   - Currency code injected into each balance record before decoding
#     (the exchange only carries it as the mapping key)
#
# Error Codes:
#   - PLNX-AUTH-001: Embedded error payload (credentials rejected)
#   - PLNX-PARSE-001: Body is not JSON or does not match the schema
#
# ============================================================================

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from balance_sync.errors import InvalidCredentials, MalformedResponse
from balance_sync.exchange.decimal_gateway import DecimalGateway
from balance_sync.models import Account, AccountType, Transaction, TransactionCategory

logger = logging.getLogger(__name__)

_gateway = DecimalGateway()

Body = Union[bytes, str]

# 9999-12-31T23:59:59Z, the last second datetime can represent
MAX_TIMESTAMP = 253402300799


# ============================================================================
# Wire Schemas
# ============================================================================

class BalanceRecord(BaseModel):
    """One entry of a returnCompleteBalances response (currency injected)."""

    model_config = ConfigDict(extra="ignore")

    currency: str = Field(min_length=1)
    available: Decimal
    on_orders: Decimal = Field(default=Decimal("0"), alias="onOrders")
    btc_value: Decimal = Field(default=Decimal("0"), alias="btcValue")

    @field_validator("available", "on_orders", "btc_value", mode="before")
    @classmethod
    def _to_crypto(cls, value: Any) -> Decimal:
        return _gateway.to_crypto(value)


class TransferRecord(BaseModel):
    """One deposit or withdrawal of a returnDepositsWithdrawals response."""

    model_config = ConfigDict(extra="ignore")

    currency: str = Field(min_length=1)
    amount: Decimal
    timestamp: int = Field(ge=0, le=MAX_TIMESTAMP)
    txid: Optional[str] = None
    withdrawal_number: Optional[int] = Field(default=None, alias="withdrawalNumber")
    address: str = ""
    status: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def _to_crypto(cls, value: Any) -> Decimal:
        return _gateway.to_crypto(value)


_BALANCE_RECORDS = TypeAdapter(List[BalanceRecord])
_TRANSFER_RECORDS = TypeAdapter(List[TransferRecord])


# ============================================================================
# Error Detection
# ============================================================================

def _embedded_error(payload: Any) -> Optional[str]:
    if isinstance(payload, dict) and len(payload) == 1 and "error" in payload:
        return str(payload["error"])
    return None


def find_error(body: Body) -> Optional[str]:
    """
    Extract the message of an embedded error payload.

    Poloniex answers HTTP 200 with ``{"error": "<message>"}`` for rejected
    keys. Only a top-level object with exactly one key named ``error``
    counts.

    Args:
        body: Raw response body

    Returns:
        The error message, or None (also None when the body is not JSON)
    """
    try:
        payload = json.loads(body)
    except (ValueError, TypeError):
        return None
    return _embedded_error(payload)


def _load_json(body: Body, what: str, correlation_id: Optional[str]) -> Any:
    try:
        return json.loads(body)
    except (ValueError, TypeError) as e:
        logger.error(
            f"[PLNX-PARSE-001] Body is not valid JSON | "
            f"response={what} | error={e} | correlation_id={correlation_id}"
        )
        raise MalformedResponse(f"{what} response is not valid JSON") from e


def _raise_embedded_error(payload: Any, what: str, correlation_id: Optional[str]) -> None:
    message = _embedded_error(payload)
    if message is not None:
        logger.warning(
            f"[PLNX-AUTH-001] Embedded error payload | "
            f"response={what} | message={message} | correlation_id={correlation_id}"
        )
        raise InvalidCredentials(
            f"Exchange returned an error: {message}",
            exchange_message=message
        )


# ============================================================================
# Accounts
# ============================================================================

def parse_accounts(body: Body, correlation_id: Optional[str] = None) -> List[Account]:
    """
    Decode a returnCompleteBalances body into accounts.

    Expected shape::

        {"BTC": {"available": "1.5", "onOrders": "0", "btcValue": "1.5"}, ...}

    Args:
        body: Raw response body
        correlation_id: Audit trail identifier

    Returns:
        One Account per currency, in response order

    Raises:
        InvalidCredentials: Embedded error payload (PLNX-AUTH-001)
        MalformedResponse: Not JSON or wrong shape (PLNX-PARSE-001)
    """
    payload = _load_json(body, "balances", correlation_id)
    _raise_embedded_error(payload, "balances", correlation_id)

    if not isinstance(payload, dict):
        raise MalformedResponse(
            f"balances response must be an object, got {type(payload).__name__}"
        )

    records = []
    for code, record in payload.items():
        if not isinstance(record, dict):
            raise MalformedResponse(f"balance record for {code} is not an object")
        records.append({**record, "currency": code})

    try:
        decoded = _BALANCE_RECORDS.validate_python(records)
    except ValidationError as e:
        logger.error(
            f"[PLNX-PARSE-001] Balance schema mismatch | "
            f"errors={e.error_count()} | correlation_id={correlation_id}"
        )
        raise MalformedResponse(f"balances response does not match schema: {e}") from e

    accounts = [
        Account(
            currency=record.currency,
            available=record.available,
            on_orders=record.on_orders,
            btc_value=record.btc_value,
            account_type=AccountType.EXCHANGE,
        )
        for record in decoded
    ]

    logger.debug(
        f"[PLNX-PARSE] Balances decoded | accounts={len(accounts)} | "
        f"correlation_id={correlation_id}"
    )
    return accounts


# ============================================================================
# Transactions
# ============================================================================

def _decode_section(
    payload: dict,
    section: str,
    category: TransactionCategory,
    correlation_id: Optional[str]
) -> List[Transaction]:
    raw = payload.get(section, [])
    if not isinstance(raw, list):
        raise MalformedResponse(f"'{section}' must be an array")

    try:
        decoded = _TRANSFER_RECORDS.validate_python(raw)
    except ValidationError as e:
        logger.error(
            f"[PLNX-PARSE-001] Transfer schema mismatch | section={section} | "
            f"errors={e.error_count()} | correlation_id={correlation_id}"
        )
        raise MalformedResponse(f"'{section}' does not match schema: {e}") from e

    transactions = []
    for record in decoded:
        if category is TransactionCategory.DEPOSIT:
            source_id = record.txid
        else:
            source_id = (
                str(record.withdrawal_number)
                if record.withdrawal_number is not None else None
            )
        if not source_id:
            raise MalformedResponse(f"'{section}' record has no transaction id")

        transaction = Transaction(
            source_transaction_id=source_id,
            currency=record.currency,
            amount=record.amount,
            timestamp=datetime.fromtimestamp(record.timestamp, tz=timezone.utc),
            status=record.status,
            address=record.address,
        )
        transactions.append(replace(transaction, category=category))

    return transactions


def parse_transactions(body: Body, correlation_id: Optional[str] = None) -> List[Transaction]:
    """
    Decode a returnDepositsWithdrawals body into transactions.

    ``deposits`` and ``withdrawals`` are decoded independently and each
    record is tagged with the category of the section it came from. A missing
    section counts as empty; a body with neither section is malformed.

    Raises:
        InvalidCredentials: Embedded error payload (PLNX-AUTH-001)
        MalformedResponse: Not JSON or wrong shape (PLNX-PARSE-001)
    """
    payload = _load_json(body, "transfers", correlation_id)
    _raise_embedded_error(payload, "transfers", correlation_id)

    if not isinstance(payload, dict):
        raise MalformedResponse(
            f"transfers response must be an object, got {type(payload).__name__}"
        )
    if "deposits" not in payload and "withdrawals" not in payload:
        raise MalformedResponse("transfers response has neither deposits nor withdrawals")

    transactions = _decode_section(
        payload, "deposits", TransactionCategory.DEPOSIT, correlation_id
    )
    transactions += _decode_section(
        payload, "withdrawals", TransactionCategory.WITHDRAWAL, correlation_id
    )

    logger.debug(
        f"[PLNX-PARSE] Transfers decoded | transactions={len(transactions)} | "
        f"correlation_id={correlation_id}"
    )
    return transactions
