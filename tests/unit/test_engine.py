"""Tests for synchronous evaluation through the validation engine."""

import pytest

from validus.config import EngineConfig, ValidusConfig
from validus.engine import ALL_TARGETS, ValidationEngine
from validus.models import RuleResult


@pytest.fixture
def engine():
    return ValidationEngine()


@pytest.fixture
def values():
    return {}


@pytest.fixture
def changes(engine):
    recorded = []
    engine.subscribe(lambda old, new: recorded.append((old, new)))
    return recorded


class TestRegistration:
    """Test rule registration helpers."""

    def test_add_rule_returns_descriptor(self, engine):
        rule = engine.add_rule("a", RuleResult.valid, name="always")
        assert rule.target_keys == ("a",)
        assert rule.display_name == "always"
        assert engine.registry.rules_for("a") == (rule,)

    def test_add_async_rule_marks_descriptor(self, engine):
        async def check():
            return RuleResult.valid()

        assert engine.add_async_rule("a", check).is_async
        assert engine.add_rule("b", check).is_async

    def test_required_rule(self, engine, values):
        engine.add_required_rule("name", lambda: values.get("name"), "Name is required")

        assert engine.validate("name").errors_for("name") == ("Name is required",)
        values["name"] = ""
        assert not engine.validate("name").is_valid
        values["name"] = "Ann"
        assert engine.validate("name").is_valid

    def test_required_rule_default_message(self, engine):
        engine.add_required_rule("age", lambda: None)
        assert engine.validate("age").errors_for("age") == ("age is required",)


class TestValidate:
    """Test single-target and full validation."""

    def test_target_without_rules_is_valid(self, engine):
        engine.add_rule("other", lambda: RuleResult.invalid("other is wrong"))
        engine.validate_all()

        result = engine.validate("unknown")
        assert result.is_valid
        assert result.errors_for("unknown") == ()
        assert engine.get_result("unknown").is_valid

    def test_validate_is_scoped_to_touched_targets(self, engine):
        engine.add_rule("a", lambda: RuleResult.invalid("a is wrong"))
        engine.add_rule("b", lambda: RuleResult.invalid("b is wrong"))
        engine.validate("b")

        result = engine.validate("a")
        assert result.targets == ["a"]
        assert engine.get_result().targets == ["b", "a"]

    def test_rules_combined_in_registration_order(self, engine):
        engine.add_rule("a", lambda: RuleResult.invalid("first"))
        engine.add_rule("a", RuleResult.valid)
        engine.add_rule("a", lambda: RuleResult.invalid("second", "third"))

        assert engine.validate("a").errors_for("a") == ("first", "second", "third")

    def test_multi_target_rule_updates_every_target(self, engine):
        engine.add_rule(["a", "b"], lambda: RuleResult.invalid("a and b disagree"))

        result = engine.validate("a")

        assert result.errors_for("a") == ("a and b disagree",)
        assert result.errors_for("b") == ("a and b disagree",)
        assert engine.get_result().errors_for("b") == ("a and b disagree",)

    def test_multi_target_rule_keeps_other_rules_of_fanned_out_target(self, engine, values):
        engine.add_rule("b", lambda: RuleResult.invalid("b rule"))
        engine.add_rule(["a", "b"], lambda: RuleResult.assert_that(values.get("ok", False), "shared rule"))
        engine.validate("b")

        values["ok"] = True
        engine.validate("a")

        assert engine.get_result().errors_for("b") == ("b rule",)

    def test_validate_all_evaluates_multi_target_rule_once(self, engine):
        calls = []

        def shared():
            calls.append(1)
            return RuleResult.invalid("shared")

        engine.add_rule(["a", "b", "c"], shared)
        result = engine.validate_all()

        assert len(calls) == 1
        assert result.errors_for("c") == ("shared",)

    def test_get_result_does_not_evaluate(self, engine):
        calls = []
        engine.add_rule("a", lambda: calls.append(1) or RuleResult.valid())

        assert engine.get_result().is_valid
        assert engine.get_result("a").is_valid
        assert calls == []


class TestNotifications:
    """Test change notification through the engine."""

    def test_identical_consecutive_results_notify_once(self, engine, changes):
        engine.add_rule("a", lambda: RuleResult.invalid("nope"))
        engine.validate("a")
        engine.validate("a")
        engine.validate_all()

        assert len(changes) == 1
        old, new = changes[0]
        assert old.is_valid
        assert new.errors_for("a") == ("nope",)

    def test_each_distinct_transition_notifies(self, engine, changes, values):
        engine.add_rule("a", lambda: RuleResult.assert_that(values.get("a", 0) > 1, f"a={values.get('a', 0)}"))
        for value in (0, 1, 2, 0):
            values["a"] = value
            engine.validate("a")

        assert [new.errors_for("a") for _, new in changes] == [("a=0",), ("a=1",), (), ("a=0",)]

    def test_failing_observer_does_not_corrupt_state(self, engine, changes):
        def broken(old, new):
            raise RuntimeError("observer bug")

        engine.subscribe(broken)
        engine.add_rule("a", lambda: RuleResult.invalid("x"))

        result = engine.validate("a")

        assert result.errors_for("a") == ("x",)
        assert engine.get_result().errors_for("a") == ("x",)
        assert len(changes) == 1

    def test_engines_do_not_share_subscribers(self, changes):
        other = ValidationEngine()
        other.add_rule("a", lambda: RuleResult.invalid("x"))
        other.validate("a")
        assert changes == []


class TestFaults:
    """Test conversion of raising rules into invalid results."""

    def test_raising_rule_becomes_fault_result(self, engine):
        def broken():
            raise ZeroDivisionError("boom")

        engine.add_rule("a", broken, name="broken")
        engine.add_rule("b", lambda: RuleResult.invalid("b is wrong"))
        engine.add_rule("c", RuleResult.valid)

        result = engine.validate_all()

        assert result.errors_for("a") == ("<rule faulted>",)
        assert result.errors_for("b") == ("b is wrong",)
        assert result.result_for("c").is_valid
        assert engine.faults.has_faults()
        fault = engine.faults.faults[0]
        assert fault.rule_name == "broken"
        assert fault.error_type == "ZeroDivisionError"
        assert fault.targets == ["a"]

    def test_wrong_return_type_is_a_fault(self, engine):
        engine.add_rule("a", lambda: True)
        assert engine.validate("a").errors_for("a") == ("<rule faulted>",)
        assert engine.faults.faults[0].error_type == "TypeError"

    def test_async_rule_returning_plain_result_is_a_fault(self, engine):
        engine.add_async_rule("a", RuleResult.valid, name="not_async")

        assert engine.validate("a").errors_for("a") == ("<rule faulted>",)
        fault = engine.faults.faults[0]
        assert fault.rule_name == "not_async"
        assert fault.error_type == "TypeError"
        assert "expected an awaitable" in fault.message

    def test_plain_rule_may_return_awaitable(self, engine):
        async def check():
            return RuleResult.invalid("remote says no")

        engine.add_rule("a", lambda: check())

        assert engine.validate("a").errors_for("a") == ("remote says no",)

    def test_custom_fault_message(self):
        config = ValidusConfig(engine=EngineConfig(fault_message="Validation failed", collect_faults=False))
        engine = ValidationEngine(config)
        engine.add_rule("a", lambda: 1 / 0)

        assert engine.validate("a").errors_for("a") == ("Validation failed",)
        assert not engine.faults.has_faults()


class TestLifecycle:
    """Test removal, reset and close."""

    def test_remove_rule(self, engine, changes):
        rule = engine.add_rule(["a", "b"], lambda: RuleResult.invalid("x"))
        engine.validate("a")

        assert engine.remove_rule(rule) is True
        assert engine.get_result().target_results == {}
        assert engine.get_result().is_valid
        assert len(changes) == 2
        assert engine.remove_rule(rule) is False

    def test_remove_all_rules(self, engine):
        engine.add_rule("a", lambda: RuleResult.invalid("x"))
        engine.validate_all()
        engine.remove_all_rules()

        assert engine.registry.all_rules() == ()
        assert engine.get_result().is_valid

    def test_reset(self, engine, changes):
        engine.add_rule("a", lambda: RuleResult.invalid("x"))
        engine.validate("a")
        engine.reset()

        assert engine.get_result().is_valid
        assert len(changes) == 2
        assert engine.validate("a").errors_for("a") == ("x",)

    def test_closed_engine_stops_evaluating(self, engine):
        calls = []
        engine.add_rule("a", lambda: calls.append(1) or RuleResult.invalid("x"))
        engine.close()

        assert engine.validate("a").is_valid
        assert engine.begin_validate_all().done()
        assert calls == []
        assert engine.closed

    def test_begin_validate_without_async_rules_is_settled(self, engine):
        engine.add_rule("a", lambda: RuleResult.invalid("x"))
        evaluation = engine.begin_validate("a")

        assert evaluation.done()
        assert evaluation.result().errors_for("a") == ("x",)
        assert evaluation.scope == "a"
        assert engine.begin_validate_all().scope is ALL_TARGETS
