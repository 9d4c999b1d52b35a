import logging

from funcengine import config
from funcengine.ir.func import FuncBackendKind
from funcengine.logging_setup import LOGGER_NAME, configure_logging


def test_timeouts_only_for_script_kinds():
    assert config.get_timeout(FuncBackendKind.STRING) is None
    assert config.get_timeout(FuncBackendKind.JS_RESOURCE_SYNC) == 300.0


def test_timeout_env_override(monkeypatch):
    monkeypatch.setenv("FUNCENGINE_TIMEOUT_JSQUALIFICATION", "2.5")
    assert config.get_timeout(FuncBackendKind.JS_QUALIFICATION) == 2.5
    assert config.load_timeouts()[FuncBackendKind.JS_QUALIFICATION] == 2.5


def test_configure_logging_is_idempotent():
    logger = configure_logging("debug")
    configure_logging("debug")
    tagged = [h for h in logger.handlers if getattr(h, "_funcengine", False)]
    assert logger.name == LOGGER_NAME
    assert len(tagged) == 1
    assert logger.level == logging.DEBUG
