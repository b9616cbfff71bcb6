import logging

from voltwatch.core import errors


def test_log_exception_includes_context_and_traceback(caplog):
    logger = logging.getLogger("test_errors")
    caplog.set_level(logging.ERROR)

    try:
        raise RuntimeError("boom")
    except RuntimeError as exc:
        errors.log_exception(logger, "Error evaluating rule", extra={"rule_id": "r1", "type": None}, exc=exc)

    record = caplog.records[-1]
    assert record.getMessage() == "Error evaluating rule rule_id=r1: boom"
    assert record.exc_info is not None


def test_log_exception_without_extra(caplog):
    logger = logging.getLogger("test_errors")
    caplog.set_level(logging.ERROR)

    errors.log_exception(logger, "MQTT shutdown failed", exc=ValueError("closed"))

    assert caplog.records[-1].getMessage() == "MQTT shutdown failed: closed"


def test_command_publish_error_is_runtime_error():
    assert issubclass(errors.CommandPublishError, RuntimeError)
