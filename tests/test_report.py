"""
Tests for the JSON results report.
"""
import json

import filelock

from paydispatch.dispatcher import summarize
from paydispatch.models import ErrorType, PaymentResult
from paydispatch.report import ResultReport


def _results() -> list[PaymentResult]:
    ok = PaymentResult.ok("stripe", {"id": "ch_1", "status": "succeeded"})
    ok.index, ok.account_code = 0, "1000"
    bad = PaymentResult.failed("", "no matching provider", ErrorType.ROUTING)
    bad.index, bad.account_code = 1, "3000"
    return [ok, bad]


class TestResultReport:
    def test_write_report(self, tmp_path):
        results = _results()
        report = ResultReport(tmp_path / "out" / "results.json")

        assert report.write(results, summarize(results)) is True

        document = json.loads(report.path.read_text())
        assert document["summary"]["attempted"] == 2
        assert document["results"][0]["raw_response"] == {"id": "ch_1", "status": "succeeded"}
        assert [r["account_code"] for r in document["results"]] == ["1000", "3000"]

    def test_lock_timeout_returns_false(self, tmp_path, monkeypatch):
        monkeypatch.setattr("paydispatch.report._LOCK_TIMEOUT", 0.05)
        report = ResultReport(tmp_path / "results.json")
        holder = filelock.FileLock(str(tmp_path / "results.json.lock"))
        with holder:
            assert report.write(_results(), {}) is False
        assert not report.path.exists()
