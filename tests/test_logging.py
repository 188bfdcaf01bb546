"""
Test suite for logging configuration

Tests JSON formatting and structured fields.
"""

import json
import logging

from lending_core.logging_config import JSONFormatter, setup_logging, get_logger, log_action


class CollectingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestJSONFormatter:
    """Test the JSON formatter"""

    def test_basic_fields(self):
        """Test timestamp, level, module and message"""
        record = logging.LogRecord("lending.ledger", logging.INFO, __file__, 1, "Posted %s", ("JE001",), None)
        payload = json.loads(JSONFormatter().format(record))

        assert payload["level"] == "INFO"
        assert payload["module"] == "lending.ledger"
        assert payload["message"] == "Posted JE001"
        assert "timestamp" in payload
        assert "loan_id" not in payload

    def test_structured_fields(self):
        """Test structured extras are included"""
        record = logging.LogRecord("lending.loans", logging.WARNING, __file__, 1, "Retrying", (), None)
        record.loan_id = "LN001"
        record.action = "retry"
        record.extra = {"attempt": 2}
        payload = json.loads(JSONFormatter().format(record))

        assert payload["loan_id"] == "LN001"
        assert payload["action"] == "retry"
        assert payload["extra"] == {"attempt": 2}


class TestLoggerSetup:
    """Test logger configuration helpers"""

    def test_setup_logging(self):
        """Test a single handler and no propagation"""
        logger = setup_logging("DEBUG", "json")
        setup_logging("DEBUG", "json")

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.level == logging.DEBUG
        assert not logger.propagate

    def test_child_loggers(self):
        """Test module loggers live under the lending namespace"""
        assert get_logger().name == "lending"
        assert get_logger("ledger").name == "lending.ledger"

    def test_log_action(self):
        """Test log_action attaches structured fields"""
        logger = logging.getLogger("lending.test_log_action")
        logger.setLevel(logging.INFO)
        handler = CollectingHandler()
        logger.addHandler(handler)
        try:
            log_action(logger, "info", "Payment recorded", loan_id="LN001", entry_number="JE002",
                       action="record_payment")
        finally:
            logger.removeHandler(handler)

        record = handler.records[0]
        assert record.loan_id == "LN001"
        assert record.entry_number == "JE002"
        assert record.action == "record_payment"
        assert not hasattr(record, "resource")
