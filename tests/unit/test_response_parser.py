"""
Unit Tests for Poloniex Response Parsing

Tests the response parser:
- Balance mapping decoded with currency injected from the key
- Deposits and withdrawals tagged with their section's category
- Embedded {"error": ...} detected before structural decoding
- Malformed bodies fail with PLNX-PARSE-001
"""

import json
import os
import sys
from datetime import datetime, timezone
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from balance_sync.errors import InvalidCredentials, MalformedResponse
from balance_sync.exchange.response_parser import (
    find_error,
    parse_accounts,
    parse_transactions,
)
from balance_sync.models import AccountType, TransactionCategory


BALANCES = {
    "BTC": {"available": "1.50000000", "onOrders": "0.25000000", "btcValue": "1.75000000"},
    "ETH": {"available": "0.00000000", "onOrders": "0.00000000", "btcValue": "0.00000000"},
    "XMR": {"available": "12.3", "onOrders": "0", "btcValue": "0.0412"},
}

TRANSFERS = {
    "deposits": [
        {
            "currency": "BTC",
            "address": "1BTCaddress",
            "amount": "0.50000000",
            "confirmations": 6,
            "txid": "a1b2c3",
            "timestamp": 1500000000,
            "status": "COMPLETE",
        },
    ],
    "withdrawals": [
        {
            "withdrawalNumber": 134933,
            "currency": "ETH",
            "address": "0xabc",
            "amount": "2.00000000",
            "timestamp": 1500000100,
            "status": "COMPLETE: 0xdeadbeef",
            "ipAddress": "10.0.0.1",
        },
    ],
}


def body(payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


# =============================================================================
# Error Detection
# =============================================================================

class TestFindError:

    def test_error_payload(self) -> None:
        assert find_error(b'{"error": "Invalid API key/secret pair."}') == "Invalid API key/secret pair."

    def test_error_with_other_keys_is_not_error(self) -> None:
        assert find_error(b'{"error": "x", "BTC": {}}') is None

    def test_normal_payload(self) -> None:
        assert find_error(body(BALANCES)) is None

    def test_non_json(self) -> None:
        assert find_error(b"<html>") is None

    def test_array(self) -> None:
        assert find_error(b'[{"error": "x"}]') is None


# =============================================================================
# Accounts
# =============================================================================

class TestParseAccounts:

    def test_currency_injected_from_key(self) -> None:
        accounts = parse_accounts(body(BALANCES))
        assert [account.currency for account in accounts] == ["BTC", "ETH", "XMR"]

    def test_amounts_are_decimal(self) -> None:
        btc = parse_accounts(body(BALANCES))[0]
        assert btc.available == Decimal("1.50000000")
        assert btc.on_orders == Decimal("0.25000000")
        assert btc.btc_value == Decimal("1.75000000")
        assert btc.current_balance == Decimal("1.75000000")
        assert btc.account_type is AccountType.EXCHANGE

    def test_eight_decimal_places(self) -> None:
        xmr = parse_accounts(body(BALANCES))[2]
        assert xmr.available == Decimal("12.30000000")
        assert xmr.available.as_tuple().exponent == -8

    def test_missing_optional_fields_default_to_zero(self) -> None:
        accounts = parse_accounts(b'{"LTC": {"available": "3"}}')
        assert accounts[0].on_orders == Decimal("0")
        assert accounts[0].btc_value == Decimal("0")

    def test_empty_mapping(self) -> None:
        assert parse_accounts(b"{}") == []

    def test_error_payload_raises_invalid_credentials(self) -> None:
        with pytest.raises(InvalidCredentials) as exc_info:
            parse_accounts(b'{"error": "Invalid API key/secret pair."}')
        assert exc_info.value.exchange_message == "Invalid API key/secret pair."
        assert exc_info.value.error_code == "PLNX-AUTH-001"

    @pytest.mark.parametrize("raw", [
        b"not json",
        b"",
        b"[]",
        b'{"BTC": "1.0"}',
        b'{"BTC": {"onOrders": "0"}}',
        b'{"BTC": {"available": "abc"}}',
        b'{"BTC": {"available": "NaN"}}',
    ])
    def test_malformed(self, raw: bytes) -> None:
        with pytest.raises(MalformedResponse) as exc_info:
            parse_accounts(raw)
        assert exc_info.value.error_code == "PLNX-PARSE-001"

    def test_accepts_str_body(self) -> None:
        assert len(parse_accounts(json.dumps(BALANCES))) == 3


# =============================================================================
# Transactions
# =============================================================================

class TestParseTransactions:

    def test_categories_from_sections(self) -> None:
        deposit, withdrawal = parse_transactions(body(TRANSFERS))
        assert deposit.category is TransactionCategory.DEPOSIT
        assert withdrawal.category is TransactionCategory.WITHDRAWAL

    def test_source_ids(self) -> None:
        deposit, withdrawal = parse_transactions(body(TRANSFERS))
        assert deposit.source_transaction_id == "a1b2c3"
        assert withdrawal.source_transaction_id == "134933"

    def test_fields(self) -> None:
        deposit, withdrawal = parse_transactions(body(TRANSFERS))
        assert deposit.amount == Decimal("0.5")
        assert deposit.currency == "BTC"
        assert deposit.source_account_id == "BTC"
        assert deposit.address == "1BTCaddress"
        assert deposit.timestamp == datetime(2017, 7, 14, 2, 40, tzinfo=timezone.utc)
        assert withdrawal.status == "COMPLETE: 0xdeadbeef"
        assert withdrawal.name == "Withdrawal ETH"

    def test_missing_section_is_empty(self) -> None:
        transactions = parse_transactions(body({"deposits": TRANSFERS["deposits"]}))
        assert len(transactions) == 1

    def test_both_sections_empty(self) -> None:
        assert parse_transactions(b'{"deposits": [], "withdrawals": []}') == []

    def test_error_payload_before_shape_check(self) -> None:
        with pytest.raises(InvalidCredentials):
            parse_transactions(b'{"error": "Nonce must be greater than 1."}')

    @pytest.mark.parametrize("payload", [
        {},
        {"deposits": {}},
        {"deposits": [{"currency": "BTC", "amount": "1", "timestamp": 1}]},
        {"withdrawals": [{"currency": "BTC", "amount": "1", "timestamp": 1}]},
        {"deposits": [{"currency": "BTC", "amount": "1", "timestamp": -1, "txid": "x"}]},
        {"deposits": [{"currency": "BTC", "amount": "x", "timestamp": 1, "txid": "x"}]},
    ])
    def test_malformed(self, payload) -> None:
        with pytest.raises(MalformedResponse):
            parse_transactions(body(payload))
