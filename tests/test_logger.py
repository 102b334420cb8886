# tests/test_logger.py
import logging

from portsurgeon.utils.logger import Logger


def test_logger_is_a_singleton():
    assert Logger() is Logger()


def test_audit_line_for_refused_action(caplog):
    caplog.set_level(logging.INFO, logger="portsurgeon")
    Logger().audit("kill", "systemd", 1, None, False, "Cannot terminate protected PID: 1")

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.getMessage() == "[AUDIT] kill systemd (pid 1) FAILED: Cannot terminate protected PID: 1"


def test_audit_line_for_successful_action(caplog):
    caplog.set_level(logging.INFO, logger="portsurgeon")
    Logger().audit("container_stop", "web", 500, 8080, True, "Container abc action stop completed")

    assert caplog.records[-1].levelno == logging.INFO
    assert "[AUDIT] container_stop web (pid 500:8080) OK" in caplog.text
