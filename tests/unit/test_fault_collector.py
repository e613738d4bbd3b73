"""Tests for rule fault collection."""

import json

from validus.diagnostics import FaultCollector


def _raise(error):
    try:
        raise error
    except Exception as e:
        return e


class TestFaultCollector:
    """Test FaultCollector bookkeeping and reports."""

    def test_collect_fault(self):
        collector = FaultCollector()
        fault_id = collector.collect_fault(
            _raise(ValueError("bad value")), "rule-1", "email_format", ("email",), 3
        )

        assert collector.has_faults()
        fault = collector.faults[0]
        assert fault.fault_id == fault_id
        assert fault.error_type == "ValueError"
        assert fault.message == "bad value"
        assert fault.targets == ["email"]
        assert fault.sequence == 3
        assert any("ValueError" in line for line in fault.traceback_lines)
        assert str(fault) == f"[{fault_id}] email_format: ValueError: bad value"

    def test_keeps_most_recent_faults(self):
        collector = FaultCollector(max_faults=2)
        for index in range(5):
            collector.collect_fault(RuntimeError(str(index)), "rule-1", "r", ("a",), index)

        assert [fault.message for fault in collector.faults] == ["3", "4"]
        assert collector.dropped == 3

    def test_counts_by_rule(self):
        collector = FaultCollector()
        collector.collect_fault(RuntimeError("x"), "rule-1", "first", ("a",), 1)
        collector.collect_fault(RuntimeError("y"), "rule-1", "first", ("a",), 2)
        collector.collect_fault(RuntimeError("z"), "rule-2", "second", ("b",), 2)

        assert collector.get_fault_counts() == {"first": 2, "second": 1}

    def test_write_report(self, tmp_path):
        collector = FaultCollector()
        assert collector.write_report(tmp_path / "faults.json") is None

        collector.collect_fault(RuntimeError("x"), "rule-1", "first", ("a",), 1)
        report = collector.write_report(tmp_path / "reports" / "faults.json")

        with open(report, encoding="utf-8") as f:
            data = json.load(f)
        assert data["total_faults"] == 1
        assert data["faults_by_rule"] == {"first": 1}
        assert data["faults"][0]["rule_id"] == "rule-1"

    def test_clear(self):
        collector = FaultCollector()
        collector.collect_fault(RuntimeError("x"), "rule-1", "first", ("a",), 1)
        collector.clear()
        assert not collector.has_faults()
