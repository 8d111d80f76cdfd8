"""Tests for the Open Finance account information client."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from integrations.account_information_client import AccountInformationClient
from integrations.exceptions import (
    OpenFinanceAPIError,
    OpenFinanceAuthError,
    OpenFinanceConnectionError,
    RetryExhaustedError,
)
from integrations.open_finance_protocol import CreditDebitIndicator
from tests.fixtures.mocks import (
    SAMPLE_ACCOUNTS_PAYLOAD,
    SAMPLE_TRANSACTIONS_PAYLOAD,
    make_executor,
    make_http_client,
)


def _client(handler, sleeps=None) -> AccountInformationClient:
    return AccountInformationClient(
        http_client=make_http_client(handler), executor=make_executor(sleeps)
    )


def _json(payload, status=200):
    return httpx.Response(status, content=json.dumps(payload).encode(),
                          headers={"Content-Type": "application/json"})


class TestListAccounts:
    def test_parses_accounts(self):
        requests = []

        def handler(request):
            requests.append(request)
            return _json(SAMPLE_ACCOUNTS_PAYLOAD)

        accounts = _client(handler).list_accounts("tok-123")

        assert [a.account_id for a in accounts] == ["acc-001", "acc-002"]
        assert accounts[0].account_type == "CHECKING"
        assert accounts[0].branch == "0001"
        assert accounts[0].holder_name == "Maria Silva"
        assert accounts[1].currency == "BRL"
        assert requests[0].url.path == "/open-banking/accounts/v1/accounts"
        assert requests[0].headers["Authorization"] == "Bearer tok-123"

    def test_missing_data_returns_empty_list(self):
        accounts = _client(lambda r: _json({"meta": {}})).list_accounts("tok")
        assert accounts == []

    def test_empty_body_returns_empty_list(self):
        accounts = _client(lambda r: httpx.Response(200)).list_accounts("tok")
        assert accounts == []

    def test_invalid_json_returns_empty_list(self):
        accounts = _client(lambda r: httpx.Response(200, content=b"<html>")).list_accounts("tok")
        assert accounts == []

    def test_skips_entries_without_account_id(self):
        payload = {"data": [{"accountType": "CHECKING"}, "junk", {"accountId": "acc-9"}]}
        accounts = _client(lambda r: _json(payload)).list_accounts("tok")
        assert [a.account_id for a in accounts] == ["acc-9"]

    def test_account_details(self):
        payload = {"data": {"accountId": "acc-001", "accountType": "SAVINGS"}}
        account = _client(lambda r: _json(payload)).get_account_details("tok", "acc-001")
        assert account.account_type == "SAVINGS"

    def test_account_details_without_data_keeps_id(self):
        account = _client(lambda r: _json({})).get_account_details("tok", "acc-001")
        assert account.account_id == "acc-001"
        assert account.account_type is None


class TestGetBalance:
    def test_parses_amount_and_currency(self):
        requests = []

        def handler(request):
            requests.append(request)
            return _json({"data": {"balance": {"amount": "1234.56", "currency": "USD"}}})

        balance = _client(handler).get_balance("tok", "acc-001")

        assert balance.amount == Decimal("1234.56")
        assert balance.currency == "USD"
        assert balance.account_id == "acc-001"
        assert balance.retrieved_at is not None
        assert requests[0].url.path == "/open-banking/accounts/v1/balances/acc-001"

    def test_missing_amount_is_zero_brl(self):
        balance = _client(lambda r: _json({"data": {"balance": {}}})).get_balance("tok", "acc-001")
        assert balance.amount == Decimal("0")
        assert balance.currency == "BRL"

    def test_empty_payload_is_zero(self):
        balance = _client(lambda r: _json({})).get_balance("tok", "acc-001")
        assert balance.amount == Decimal("0")

    def test_unparsable_amount_is_zero(self):
        payload = {"data": {"balance": {"amount": "lots"}}}
        balance = _client(lambda r: _json(payload)).get_balance("tok", "acc-001")
        assert balance.amount == Decimal("0")

    def test_numeric_amount_keeps_precision(self):
        payload = {"data": {"balance": {"amount": 10.1}}}
        balance = _client(lambda r: _json(payload)).get_balance("tok", "acc-001")
        assert balance.amount == Decimal("10.1")


class TestGetTransactions:
    def test_parses_page_and_meta(self):
        transactions = _client(lambda r: _json(SAMPLE_TRANSACTIONS_PAYLOAD)).get_transactions(
            "tok", "acc-001"
        )

        assert transactions.total_pages == 2
        assert transactions.current_page == 1
        assert transactions.has_more is True
        first, second = transactions.transactions
        assert first.transaction_id == "txn-1"
        assert first.amount == Decimal("150.75")
        assert first.description == "Salário"
        assert first.credit_debit_indicator == CreditDebitIndicator.CREDIT
        assert first.booking_date == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert second.credit_debit_indicator == CreditDebitIndicator.DEBIT
        # -03:00 normalized to UTC
        assert second.booking_date == datetime(2025, 1, 16, 11, 0, tzinfo=timezone.utc)
        assert first.raw_data["transactionId"] == "txn-1"

    def test_sends_paging_and_window_params(self):
        requests = []

        def handler(request):
            requests.append(request)
            return _json({"data": {"transaction": []}})

        _client(handler).get_transactions(
            "tok",
            "acc-001",
            from_date=datetime(2025, 1, 1, tzinfo=timezone.utc),
            to_date=datetime(2025, 1, 31),
            page=3,
            page_size=50,
        )

        params = requests[0].url.params
        assert requests[0].url.path == "/open-banking/accounts/v1/transactions/acc-001"
        assert params["page"] == "3"
        assert params["page-size"] == "50"
        assert params["fromBookingDateTime"] == "2025-01-01T00:00:00+00:00"
        assert params["toBookingDateTime"] == "2025-01-31T00:00:00+00:00"

    def test_default_page_size(self):
        requests = []

        def handler(request):
            requests.append(request)
            return _json({})

        client = AccountInformationClient(
            http_client=make_http_client(handler), executor=make_executor(), default_page_size=25
        )
        client.get_transactions("tok", "acc-001")

        assert requests[0].url.params["page-size"] == "25"
        assert "fromBookingDateTime" not in requests[0].url.params

    def test_missing_meta_means_single_page(self):
        page = _client(lambda r: _json({"data": {"transaction": []}})).get_transactions(
            "tok", "acc-001", page=1
        )
        assert page.total_pages == 1
        assert page.has_more is False
        assert page.transactions == []

    def test_unparsable_date_becomes_none(self):
        payload = {
            "data": {
                "transaction": [
                    {"transactionId": "t1", "amount": "5.00", "bookingDateTime": "yesterday"}
                ]
            }
        }
        page = _client(lambda r: _json(payload)).get_transactions("tok", "acc-001")
        assert page.transactions[0].booking_date is None

    def test_missing_fields_get_defaults(self):
        payload = {"data": {"transaction": [{"amount": {"amount": "7.25", "currency": "USD"}}]}}
        txn = _client(lambda r: _json(payload)).get_transactions("tok", "acc-001").transactions[0]

        assert txn.transaction_id is None
        assert txn.amount == Decimal("7.25")
        assert txn.currency == "USD"
        assert txn.description == ""
        assert txn.credit_debit_indicator == CreditDebitIndicator.DEBIT

    def test_non_dict_entries_are_skipped(self):
        payload = {"data": {"transaction": ["bad", {"transactionId": "t1", "amount": "1"}]}}
        page = _client(lambda r: _json(payload)).get_transactions("tok", "acc-001")
        assert [t.transaction_id for t in page.transactions] == ["t1"]


class TestErrorMapping:
    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors(self, status):
        client = _client(lambda r: httpx.Response(status))
        with pytest.raises(OpenFinanceAuthError) as exc_info:
            client.get_balance("tok", "acc-001")
        assert exc_info.value.status_code == status
        assert exc_info.value.operation == "get_balance"

    def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        with pytest.raises(OpenFinanceAPIError) as exc_info:
            _client(handler).get_balance("tok", "missing")
        assert exc_info.value.status_code == 404
        assert len(calls) == 1

    def test_server_error_retried_then_succeeds(self):
        sleeps = []
        responses = [httpx.Response(503), _json({"data": {"balance": {"amount": "9.99"}}})]

        balance = _client(lambda r: responses.pop(0), sleeps).get_balance("tok", "acc-001")

        assert balance.amount == Decimal("9.99")
        assert sleeps == [2.0]

    def test_persistent_server_error_exhausts(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        sleeps = []
        with pytest.raises(RetryExhaustedError):
            _client(handler, sleeps).list_accounts("tok")
        assert len(calls) == 3
        assert sleeps == [2.0, 4.0]

    def test_timeout_maps_to_connection_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(OpenFinanceConnectionError):
            _client(handler).list_accounts("tok")

    def test_transport_error_maps_to_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(OpenFinanceConnectionError):
            _client(handler).get_transactions("tok", "acc-001")
