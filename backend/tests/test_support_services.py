"""
test_support_services.py — Logging formatter and request context, request
middleware, performance tracker and the in-memory dealer lookup.
"""

import asyncio
import json
import logging

from app.services.dealer_lookup import StaticDealerLookup
from app.services.logging_config import JSONFormatter, RequestContextFilter, request_id_var
from app.services.perf_monitor import PerformanceTracker, timed
from app.services.pricing_engine import DealerContext, NO_DEALER


def _record(**extra):
    record = logging.LogRecord("bayedi-test", logging.INFO, __file__, 10, "priced %s", ("BYD100",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_core_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "bayedi-test"
        assert entry["message"] == "priced BYD100"

    def test_domain_extras_passed_through(self):
        entry = json.loads(JSONFormatter().format(_record(quote_id="q-1", order_id="o-1", duration_ms=3.5)))
        assert entry["quote_id"] == "q-1"
        assert entry["order_id"] == "o-1"
        assert entry["duration_ms"] == 3.5

    def test_absent_extras_omitted(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert "quote_id" not in entry
        assert "duration_ms" not in entry


class TestPerformanceTracker:

    def test_average_and_slowest(self):
        t = PerformanceTracker()
        t.record_calculation(2.0)
        t.record_calculation(4.0, partial=True)
        metrics = t.get_metrics()
        assert metrics["calculations_processed"] == 2
        assert metrics["partial_results"] == 1
        assert metrics["avg_calculation_ms"] == 3.0
        assert metrics["slowest_calculation_ms"] == 4.0

    def test_errors_by_operation(self):
        t = PerformanceTracker()
        t.record_error("compute_item_price")
        t.record_error("compute_item_price")
        metrics = t.get_metrics()
        assert metrics["error_count"] == 2
        assert metrics["error_count_by_operation"] == {"compute_item_price": 2}

    def test_reset(self):
        t = PerformanceTracker()
        t.record_calculation(1.0)
        t.reset()
        assert t.get_metrics()["calculations_processed"] == 0

    def test_timed_keeps_return_value(self):
        @timed
        def double(x):
            return 2 * x
        assert double(4) == 8
        assert double.__name__ == "double"


class TestStaticDealerLookup:

    def test_known_dealer(self):
        lookup = StaticDealerLookup({"d-1": DealerContext(20, 2)})
        assert asyncio.run(lookup.get_dealer_margins("d-1")) == DealerContext(20, 2)

    def test_missing_or_unknown_dealer_gets_zero_defaults(self):
        lookup = StaticDealerLookup({"d-1": DealerContext(20, 2)})
        assert asyncio.run(lookup.get_dealer_margins(None)) is NO_DEALER
        assert asyncio.run(lookup.get_dealer_margins("d-404")) == DealerContext(0, 0)


class TestRequestContext:

    def test_filter_stamps_bound_request_id(self):
        token = request_id_var.set("req-7")
        try:
            record = _record()
            assert RequestContextFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert json.loads(JSONFormatter().format(record))["request_id"] == "req-7"

    def test_explicit_request_id_wins(self):
        token = request_id_var.set("req-7")
        try:
            record = _record(request_id="req-explicit")
            RequestContextFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "req-explicit"

    def test_nothing_bound_outside_requests(self):
        record = _record()
        RequestContextFilter().filter(record)
        assert not hasattr(record, "request_id")


class TestRequestMiddleware:

    _ITEM = {"system_type": "BYD100", "width": 3000, "height": 3000, "quantity": 1}

    def test_incoming_request_id_is_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "req-echo"})
        assert resp.headers["X-Request-ID"] == "req-echo"

    def test_pricing_logs_carry_request_id(self, client, admin_headers, caplog):
        caplog.handler.addFilter(RequestContextFilter())
        with caplog.at_level(logging.INFO):
            client.post(
                "/api/quotes/calculate", json=self._ITEM,
                headers={**admin_headers, "X-Request-ID": "req-42"},
            )
        pricing = [r for r in caplog.records if r.name == "bayedi-pricing"]
        assert pricing
        assert all(r.request_id == "req-42" for r in pricing)
        assert request_id_var.get() is None

    def test_request_line_names_the_quote(self, client, db_session, admin_headers, caplog):
        with caplog.at_level(logging.INFO, logger="bayedi-api.middleware"):
            client.get("/api/quotes/q-404", headers=admin_headers)
        line = next(r for r in caplog.records if r.name == "bayedi-api.middleware")
        assert line.quote_id == "q-404"
        assert line.http_status == 404
