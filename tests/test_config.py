import pytest

from voltwatch.core.config import Settings, validate_runtime_settings


def test_subscribed_homes_prefers_home_ids():
    assert Settings(home_id="a").subscribed_homes() == ["a"]
    assert Settings(home_id="a", home_ids=" b, c ,").subscribed_homes() == ["b", "c"]
    assert Settings(home_id="a", home_ids=" , ").subscribed_homes() == ["a"]


def test_rule_interval_in_seconds():
    assert Settings(rule_eval_interval_ms=1500).rule_eval_interval_sec == 1.5


def test_non_positive_interval_rejected():
    with pytest.raises(RuntimeError):
        validate_runtime_settings(Settings(rule_eval_interval_ms=0))


def test_prod_requires_auth(monkeypatch):
    monkeypatch.setenv("VOLTWATCH_ENV", "prod")
    monkeypatch.setenv("VOLTWATCH_AUTH_DISABLED", "true")
    with pytest.raises(RuntimeError):
        validate_runtime_settings(Settings())
    monkeypatch.setenv("VOLTWATCH_AUTH_DISABLED", "false")
    validate_runtime_settings(Settings())


def test_command_qos_bounds():
    assert Settings().mqtt_command_qos in (0, 1, 2)
    with pytest.raises(ValueError):
        Settings(mqtt_command_qos=3)
