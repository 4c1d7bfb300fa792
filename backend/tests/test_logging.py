"""Tests for structured JSON logging.

Tests cover:
- Context passed with ``extra=`` rendered as top-level fields
- Ledger operations attaching user and balance context
"""

import json
import logging
import sys

from roomvision.core.logging import JsonFormatter
from roomvision.models import User
from roomvision.services.ledger_service import AccountLedger


def make_record(message: str = "Credited 5 credits", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "roomvision.services.ledger_service", logging.INFO, __file__, 42, message, None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_extra_fields_rendered():
    """Test that context attached with extra= becomes JSON fields."""
    entry = json.loads(JsonFormatter().format(make_record(user_id="u1", balance=5)))

    assert entry["message"] == "Credited 5 credits"
    assert entry["level"] == "INFO"
    assert entry["logger"] == "roomvision.services.ledger_service"
    assert entry["user_id"] == "u1"
    assert entry["balance"] == 5


def test_standard_record_attributes_omitted():
    """Test that LogRecord internals do not leak into the output."""
    entry = json.loads(JsonFormatter(service="roomvision").format(make_record()))

    assert entry["service"] == "roomvision"
    for attr in ("lineno", "pathname", "args", "msg", "process", "thread"):
        assert attr not in entry


def test_exception_rendered():
    """Test that exception info is rendered as text."""
    try:
        raise ValueError("bad state")
    except ValueError:
        record = make_record()
        record.exc_info = sys.exc_info()

    entry = json.loads(JsonFormatter().format(record))
    assert "ValueError: bad state" in entry["exception"]


def test_unserializable_extra_stringified():
    """Test that non-JSON values are stringified rather than failing."""
    entry = json.loads(JsonFormatter().format(make_record(status=object())))

    assert entry["status"].startswith("<object object")


async def test_ledger_logs_carry_context(db_session, test_user: User, caplog):
    """Test that a credit logs the user and resulting balance as fields."""
    caplog.set_level(logging.INFO, logger="roomvision.services.ledger_service")

    await AccountLedger(db_session).credit(test_user.id, 5)

    record = next(r for r in caplog.records if r.getMessage().startswith("Credited"))
    assert record.user_id == test_user.id
    assert record.credits == 5
    assert record.balance == 8
