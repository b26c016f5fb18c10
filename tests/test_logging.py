import logging

from taskpilot.util.logging import configure_file_logging, get_logger, redact


def test_redact_bearer_tokens_and_explicit_secrets():
    text = "Authorization: Bearer abc.def-123 secret=hunter2"
    cleaned = redact(text, extra_secrets=["hunter2", ""])
    assert "abc.def-123" not in cleaned
    assert "Bearer [REDACTED]" in cleaned
    assert "hunter2" not in cleaned


def test_file_log_is_redacted(tmp_path):
    path = configure_file_logging(tmp_path / "logs" / "debug.log")
    logger = get_logger("taskpilot.test")
    logger.debug("Calling with %s", "Bearer topsecret")
    root = logging.getLogger("taskpilot")
    for handler in list(root.handlers):
        if isinstance(handler, logging.FileHandler):
            handler.flush()
            root.removeHandler(handler)
            handler.close()
    content = path.read_text(encoding="utf-8")
    assert "Calling with Bearer [REDACTED]" in content
    assert "topsecret" not in content
