import io
import json
import logging

import pytest

from factory_mrp.core.context import reset_request_id, set_request_id
from factory_mrp.core.logging_config import configure_logging, reset_logging


@pytest.fixture()
def stream():
    buf = io.StringIO()
    yield buf
    reset_logging()


class TestLoggingConfig:
    def test_json_lines_carry_request_id(self, stream):
        configure_logging(level="INFO", fmt="json", stream=stream)
        token = set_request_id("req-9")
        try:
            logging.getLogger("factory_mrp.tests").info("plan %s started", 3, extra={"plan_id": 3})
        finally:
            reset_request_id(token)

        record = json.loads(stream.getvalue().strip())
        assert record["message"] == "plan 3 started"
        assert record["request_id"] == "req-9"
        assert record["plan_id"] == 3
        assert record["level"] == "INFO"

    def test_configure_is_idempotent(self, stream):
        configure_logging(fmt="text", stream=stream)
        configure_logging(fmt="text", stream=stream)
        assert len(logging.getLogger("factory_mrp").handlers) == 1

    def test_text_format_without_request(self, stream):
        configure_logging(level="DEBUG", fmt="text", stream=stream)
        logging.getLogger("factory_mrp.tests").warning("short on %s", "B")
        line = stream.getvalue()
        assert "WARNING [-] factory_mrp.tests: short on B" in line
