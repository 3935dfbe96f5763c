"""
Tests for configuration, structured logging, money helpers and errors
"""

import json
import logging
import pytest
from decimal import Decimal

from bank_ledger.config import LedgerConfig, get_config, reload_config
from bank_ledger.logging_config import JSONFormatter, setup_logging, log_action
from bank_ledger.money import MAX_AMOUNT, parse_amount, round_amount, format_amount, mask_account_number
from bank_ledger.errors import (
    LedgerError, InsufficientFunds, TransactionNotFound, PersistenceFailure, ValidationError
)


class TestConfig:
    """Environment driven configuration"""

    def test_defaults(self):
        config = LedgerConfig()
        assert config.storage_backend == "sqlite"
        assert config.account_number_digits == 4
        assert config.enable_audit_logging

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("BANK_LEDGER_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("BANK_LEDGER_API_PORT", "9000")
        try:
            config = reload_config()
            assert config.storage_backend == "memory"
            assert config.api_port == 9000
            assert get_config() is config
        finally:
            monkeypatch.delenv("BANK_LEDGER_STORAGE_BACKEND")
            monkeypatch.delenv("BANK_LEDGER_API_PORT")
            reload_config()


class TestLogging:
    """Structured logging helpers"""

    def test_json_formatter(self):
        record = logging.LogRecord("bank_ledger.test", logging.INFO, __file__, 1, "hello", None, None)
        record.action = "execute_transaction"
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "hello"
        assert data["action"] == "execute_transaction"
        assert "resource" not in data

    def test_log_action_structured_fields(self, caplog):
        logger = logging.getLogger("bank_ledger.test_actions")
        with caplog.at_level(logging.INFO, logger="bank_ledger.test_actions"):
            log_action(logger, "info", "Transaction executed", action="execute_transaction",
                       resource="transaction:T1", extra={"amount": "5.00"})
        record = caplog.records[-1]
        assert record.action == "execute_transaction"
        assert record.resource == "transaction:T1"

    def test_setup_logging_text(self, tmp_path):
        log_file = tmp_path / "ledger.log"
        logger = setup_logging("DEBUG", logger_name="bank_ledger.test_setup",
                               log_format="text", log_file=str(log_file))
        logger.info("plain line")
        for handler in logger.handlers:
            handler.flush()
        assert "plain line" in log_file.read_text()
        assert logger.level == logging.DEBUG


class TestMoney:
    """Amount parsing and display"""

    @pytest.mark.parametrize("value, expected", [
        ("10", Decimal('10.00')),
        (0.1, Decimal('0.10')),
        ("1.50", Decimal('1.50')),
        (Decimal('7'), Decimal('7.00')),
        ("999999999999.99", MAX_AMOUNT),
    ])
    def test_parse_amount(self, value, expected):
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", ["abc", "Infinity", None, False, "2.345", "0.005", "1e30", "1000000000000.00"])
    def test_parse_amount_rejects(self, value):
        with pytest.raises(ValueError):
            parse_amount(value)

    def test_round_amount(self):
        assert round_amount(Decimal('1.005')) == Decimal('1.01')
        assert round_amount(Decimal('2.344')) == Decimal('2.34')
        with pytest.raises(ValueError):
            round_amount(Decimal('1e30'))

    def test_format_and_mask(self):
        assert format_amount(Decimal('1234.5')) == "1,234.50"
        assert mask_account_number("123456789") == "****6789"


class TestErrors:
    """Error taxonomy"""

    def test_codes_and_status(self):
        assert InsufficientFunds("x").http_status == 400
        assert isinstance(InsufficientFunds("x"), ValidationError)
        assert TransactionNotFound("x").http_status == 404
        assert PersistenceFailure("x").http_status == 500

    def test_to_dict(self):
        error = InsufficientFunds("Not enough", {"account_id": "A1"})
        assert error.to_dict() == {
            "error": "insufficient_funds",
            "message": "Not enough",
            "details": {"account_id": "A1"}
        }
        assert LedgerError("plain").to_dict() == {"error": "ledger_error", "message": "plain"}
