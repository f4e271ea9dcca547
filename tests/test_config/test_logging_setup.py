import json

import structlog

import codeloop.config as config_module
from codeloop.config import Config
from codeloop.logging import configure_logging, get_logger


def test_json_logging_goes_to_stderr(monkeypatch, capsys):
    cfg = Config()
    cfg.logging.format = "json"
    monkeypatch.setattr(config_module, "_config", cfg)

    try:
        configure_logging("INFO")
        get_logger("codeloop.test").info("tool finished", tool="bash", call_id="c1")
        captured = capsys.readouterr()
    finally:
        structlog.reset_defaults()

    assert captured.out == ""
    line = json.loads(captured.err.strip().splitlines()[-1])
    assert line["event"] == "tool finished"
    assert line["tool"] == "bash"
    assert line["level"] == "info"


def test_level_filters_lower_records(monkeypatch, capsys):
    cfg = Config()
    cfg.logging.format = "json"
    monkeypatch.setattr(config_module, "_config", cfg)

    try:
        configure_logging("ERROR")
        get_logger("codeloop.test").warning("ignored")
        captured = capsys.readouterr()
    finally:
        structlog.reset_defaults()

    assert "ignored" not in captured.err
