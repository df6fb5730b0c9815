import logging

from roomrelay.config import RelayRuntimeConfig
from roomrelay.logging_config import build_handlers, configure_logging, level_from


def test_configure_logging_file_and_levels(tmp_path) -> None:
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    log_file = tmp_path / "logs" / "relay.log"
    try:
        cfg = RelayRuntimeConfig(log_console=False, log_uvicorn_level="ERROR")
        configure_logging(cfg, override_level="debug", override_file=str(log_file))

        assert root.level == logging.DEBUG
        assert logging.getLogger("uvicorn.access").level == logging.ERROR
        assert [type(h) for h in root.handlers] == [logging.FileHandler]

        logging.getLogger("roomrelay.test").info("hello %s", "file")
        for h in root.handlers:
            h.flush()
        assert "hello file" in log_file.read_text(encoding="utf-8")
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
        logging.captureWarnings(False)


def test_level_from_accepts_names_numbers_and_blanks() -> None:
    assert level_from("debug", logging.INFO) == logging.DEBUG
    assert level_from("WARN", logging.INFO) == logging.WARNING
    assert level_from("15", logging.INFO) == 15
    assert level_from(30, logging.INFO) == 30
    assert level_from("", logging.ERROR) == logging.ERROR
    assert level_from(None, logging.ERROR) == logging.ERROR
    assert level_from("chatty", logging.INFO) == logging.INFO


def test_empty_file_override_disables_file_logging(tmp_path) -> None:
    cfg = RelayRuntimeConfig(log_console=False, log_file=str(tmp_path / "relay.log"))

    assert build_handlers(cfg, override_file="") == []
    handlers = build_handlers(cfg)
    try:
        assert [type(h) for h in handlers] == [logging.FileHandler]
    finally:
        for h in handlers:
            h.close()
