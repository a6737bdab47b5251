"""
Tests for Dispatcher routing, failure isolation, ordering, concurrency and
deadline handling.
"""
import threading
import time

import pytest

from paydispatch.dispatcher import Dispatcher, build_request, summarize
from paydispatch.errors import InvalidRequestError, ProviderError, TransportError
from paydispatch.models import (
    DEADLINE_EXCEEDED,
    NO_MATCHING_PROVIDER,
    Account,
    ErrorType,
    PaymentResult,
)
from paydispatch.routing import RoutingTable

from conftest import RecordingAdapter


def _dispatcher(routing, *adapters, **kwargs) -> Dispatcher:
    return Dispatcher(routing=routing, adapters={a.name: a for a in adapters}, **kwargs)


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

class TestRouting:
    def test_charge_account_goes_only_to_stripe(self, routing, stripe_adapter, mt_adapter):
        dispatcher = _dispatcher(routing, stripe_adapter, mt_adapter)
        results = dispatcher.dispatch([Account("1000", {"amount": 2000})])

        assert len(stripe_adapter.requests) == 1
        assert mt_adapter.requests == []
        assert results[0].provider == "stripe"

    def test_unmatched_account_fails_and_processing_continues(
        self, routing, stripe_adapter, mt_adapter
    ):
        dispatcher = _dispatcher(routing, stripe_adapter, mt_adapter)
        results = dispatcher.dispatch([
            Account("9999", {"amount": 100}),
            Account("2000", {"amount": 300}),
        ])

        assert results[0].success is False
        assert results[0].error == NO_MATCHING_PROVIDER
        assert results[0].error_type == ErrorType.ROUTING
        assert results[1].success is True
        assert len(mt_adapter.requests) == 1

    def test_route_to_unconfigured_provider_is_routing_failure(self, stripe_adapter):
        table = RoutingTable(codes={"1000": "stripe", "2000": "modern_treasury"})
        dispatcher = _dispatcher(table, stripe_adapter)
        result = dispatcher.dispatch([Account("2000", {"amount": 1})])[0]
        assert result.success is False
        assert result.error_type == ErrorType.ROUTING
        assert result.error.startswith(NO_MATCHING_PROVIDER)


# ---------------------------------------------------------------------------
# Three-account scenario and failure isolation
# ---------------------------------------------------------------------------

class TestMixedDispatch:
    def test_three_accounts_one_result_each_in_input_order(
        self, routing, stripe_adapter, mt_adapter, three_accounts
    ):
        def declined(request):
            raise ProviderError("HTTP 402 Payment Required")

        mt = RecordingAdapter("modern_treasury", behaviour=declined)
        dispatcher = _dispatcher(routing, stripe_adapter, mt)

        results = dispatcher.dispatch(three_accounts)

        assert len(results) == 3
        assert [r.account_code for r in results] == ["1000", "2000", "3000"]
        assert [r.index for r in results] == [0, 1, 2]
        assert [r.success for r in results] == [True, False, False]
        assert results[1].error_type == ErrorType.PROVIDER
        assert results[2].error_type == ErrorType.ROUTING

    def test_transport_fault_does_not_abort_run(self, routing, mt_adapter):
        def unreachable(request):
            raise TransportError("connection refused")

        stripe = RecordingAdapter("stripe", behaviour=unreachable)
        dispatcher = _dispatcher(routing, stripe, mt_adapter)

        results = dispatcher.dispatch([
            Account("1000", {"amount": 1}),
            Account("2000", {"amount": 2}),
        ])

        assert results[0].success is False
        assert results[0].provider == "stripe"
        assert results[0].raw_response is None
        assert results[0].error_type == ErrorType.TRANSPORT
        assert results[1].success is True

    def test_exception_outside_adapter_is_isolated(self, routing, stripe_adapter, mt_adapter):
        class ExplodingRouting(RoutingTable):
            def resolve(self, account):
                if account.code == "1000":
                    raise RuntimeError("routing backend down")
                return super().resolve(account)

        table = ExplodingRouting(codes={"2000": "modern_treasury"})
        dispatcher = _dispatcher(table, stripe_adapter, mt_adapter)

        results = dispatcher.dispatch([
            Account("1000", {"amount": 1}),
            Account("2000", {"amount": 2}),
        ])

        assert results[0].success is False
        assert results[0].error_type == ErrorType.INTERNAL
        assert results[1].success is True

    def test_missing_amount_is_invalid_request_and_adapter_not_called(
        self, routing, stripe_adapter, mt_adapter
    ):
        dispatcher = _dispatcher(routing, stripe_adapter, mt_adapter)
        result = dispatcher.dispatch([Account("1000")])[0]
        assert result.success is False
        assert result.error_type == ErrorType.INVALID_REQUEST
        assert result.provider == "stripe"
        assert stripe_adapter.requests == []

    def test_empty_input(self, routing, stripe_adapter):
        assert _dispatcher(routing, stripe_adapter).dispatch([]) == []


class TestNotIdempotent:
    def test_dispatching_twice_charges_twice(self, routing, stripe_adapter, mt_adapter):
        dispatcher = _dispatcher(routing, stripe_adapter, mt_adapter)
        accounts = [Account("1000", {"amount": 2000})]

        dispatcher.dispatch(accounts)
        dispatcher.dispatch(accounts)

        assert len(stripe_adapter.requests) == 2


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------

class TestBuildRequest:
    def test_account_values_take_precedence(self):
        account = Account("1000", {"amount": 150, "currency": "gbp", "description": "Fee"})
        req = build_request(account, "stripe", {"default_amount": 999, "currency": "EUR"})
        assert (req.amount, req.currency, req.description) == (150, "GBP", "Fee")

    def test_provider_defaults(self):
        req = build_request(Account("1000"), "stripe", {"default_amount": 999, "currency": "EUR"})
        assert req.amount == 999
        assert req.currency == "EUR"
        assert req.description == "stripe payment for account 1000"

    def test_global_currency_default(self):
        req = build_request(Account("1000", {"amount": 1}), "stripe", {}, "CAD")
        assert req.currency == "CAD"

    def test_integer_like_values_accepted(self):
        assert build_request(Account("1", {"amount": "250"}), "stub", {}).amount == 250
        assert build_request(Account("1", {"amount": 250.0}), "stub", {}).amount == 250

    @pytest.mark.parametrize("amount", [12.5, "12.50", -5, 0, True])
    def test_invalid_amount(self, amount):
        with pytest.raises(InvalidRequestError):
            build_request(Account("1", {"amount": amount}), "stub", {})

    def test_missing_amount(self):
        with pytest.raises(InvalidRequestError, match="no amount"):
            build_request(Account("1"), "stub", {})

    def test_null_amount_falls_back_to_provider_default(self):
        req = build_request(Account("1000", {"amount": None}), "stripe", {"default_amount": 999})
        assert req.amount == 999

    def test_metadata_forwarded(self):
        req = build_request(Account("1", {"amount": 1, "source": "tok_visa"}), "stripe", {})
        assert req.metadata["source"] == "tok_visa"


# ---------------------------------------------------------------------------
# Concurrency and deadline
# ---------------------------------------------------------------------------

class TestConcurrency:
    def test_results_follow_input_order_not_completion_order(self, routing, mt_adapter):
        def slow_first(request):
            if request.amount == 1:
                time.sleep(0.2)
            return {"id": f"ch_{request.amount}"}

        stripe = RecordingAdapter("stripe", behaviour=slow_first)
        dispatcher = _dispatcher(routing, stripe, mt_adapter, max_workers=4)

        accounts = [Account("1000", {"amount": n}) for n in (1, 2, 3)]
        results = dispatcher.dispatch(accounts)

        assert [r.raw_response["id"] for r in results] == ["ch_1", "ch_2", "ch_3"]
        assert [r.index for r in results] == [0, 1, 2]

    def test_each_account_charged_exactly_once(self, routing, stripe_adapter, mt_adapter):
        dispatcher = _dispatcher(routing, stripe_adapter, mt_adapter, max_workers=8)
        accounts = [Account("1000" if n % 2 else "2000", {"amount": n + 1}) for n in range(20)]

        results = dispatcher.dispatch(accounts)

        assert len(results) == 20
        assert all(r.success for r in results)
        charged = sorted(r.amount for r in stripe_adapter.requests + mt_adapter.requests)
        assert charged == list(range(1, 21))

    def test_concurrent_deadline_marks_unfinished_accounts(self, routing, mt_adapter):
        release = threading.Event()

        def blocking(request):
            release.wait(timeout=5)
            return {"id": "late"}

        stripe = RecordingAdapter("stripe", behaviour=blocking)
        dispatcher = _dispatcher(
            routing, stripe, mt_adapter, max_workers=2, deadline_seconds=0.2
        )
        try:
            results = dispatcher.dispatch([
                Account("1000", {"amount": 1}),
                Account("2000", {"amount": 2}),
            ])
        finally:
            release.set()

        assert results[0].success is False
        assert results[0].error == DEADLINE_EXCEEDED
        assert results[0].error_type == ErrorType.TIMEOUT
        assert results[0].provider == "stripe"
        assert results[1].success is True

    def test_concurrent_deadline_cancels_queued_accounts(self, routing, mt_adapter):
        release = threading.Event()

        def blocking(request):
            release.wait(timeout=5)
            return {"id": "late"}

        stripe = RecordingAdapter("stripe", behaviour=blocking)
        dispatcher = _dispatcher(
            routing, stripe, mt_adapter, max_workers=2, deadline_seconds=0.2
        )
        try:
            results = dispatcher.dispatch([
                Account("1000", {"amount": 1}),
                Account("1000", {"amount": 2}),
                Account("2000", {"amount": 3}),
            ])
        finally:
            release.set()

        assert [r.error_type for r in results] == [ErrorType.TIMEOUT] * 3
        assert [r.index for r in results] == [0, 1, 2]
        assert results[2].provider == "modern_treasury"
        assert results[2].account_code == "2000"
        assert mt_adapter.requests == []

    def test_sequential_deadline_skips_remaining_accounts(self, routing, mt_adapter):
        def slow(request):
            time.sleep(0.15)
            return {"id": "ch"}

        stripe = RecordingAdapter("stripe", behaviour=slow)
        dispatcher = _dispatcher(routing, stripe, mt_adapter, deadline_seconds=0.05)

        results = dispatcher.dispatch([
            Account("1000", {"amount": 1}),
            Account("2000", {"amount": 2}),
        ])

        assert results[0].success is True
        assert results[1].error_type == ErrorType.TIMEOUT
        assert mt_adapter.requests == []

    def test_deadline_result_survives_routing_failure(self, mt_adapter):
        class FlakyRouting(RoutingTable):
            def resolve(self, account):
                if account.code == "2000":
                    raise RuntimeError("routing backend down")
                return super().resolve(account)

        def slow(request):
            time.sleep(0.15)
            return {"id": "ch"}

        stripe = RecordingAdapter("stripe", behaviour=slow)
        table = FlakyRouting(codes={"1000": "stripe"})
        dispatcher = _dispatcher(table, stripe, mt_adapter, deadline_seconds=0.05)

        results = dispatcher.dispatch([
            Account("1000", {"amount": 1}),
            Account("2000", {"amount": 2}),
        ])

        assert results[0].success is True
        assert results[1].error_type == ErrorType.TIMEOUT
        assert results[1].provider == ""
        assert results[1].account_code == "2000"

    @pytest.mark.parametrize("kwargs", [{"max_workers": 0}, {"deadline_seconds": 0}])
    def test_invalid_limits_rejected(self, routing, kwargs):
        with pytest.raises(ValueError):
            Dispatcher(routing=routing, adapters={}, **kwargs)

    def test_close_closes_each_adapter_once(self, routing, stripe_adapter):
        dispatcher = Dispatcher(
            routing=routing, adapters={"stripe": stripe_adapter, "modern_treasury": stripe_adapter}
        )
        dispatcher.close()
        assert stripe_adapter.closed is True


# ---------------------------------------------------------------------------
# summarize
# ---------------------------------------------------------------------------

class TestSummarize:
    def test_counts(self):
        results = [
            PaymentResult.ok("stripe", {}),
            PaymentResult.failed("modern_treasury", "HTTP 402", ErrorType.PROVIDER),
            PaymentResult.failed("", NO_MATCHING_PROVIDER, ErrorType.ROUTING),
        ]
        summary = summarize(results)
        assert summary["attempted"] == 3
        assert summary["succeeded"] == 1
        assert summary["failed"] == 2
        assert summary["by_provider"]["stripe"] == {"succeeded": 1, "failed": 0}
        assert summary["by_provider"]["unrouted"] == {"succeeded": 0, "failed": 1}
        assert summary["by_error_type"] == {"provider": 1, "routing": 1}

    def test_empty(self):
        assert summarize([])["attempted"] == 0
