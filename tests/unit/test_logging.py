"""
Unit tests for the structlog processors.
"""

from shared.logging import redact_sensitive
from shared.logging.structured_logger import REDACTED


class TestRedaction:

    def test_pin_values_masked(self):
        event = redact_sensitive(None, "info", {"event": "login", "pin_code": "2468", "email": "a@b.ae"})
        assert event == {"event": "login", "pin_code": REDACTED, "email": "a@b.ae"}

    def test_nested_body_masked(self):
        event = redact_sensitive(None, "info", {"event": "request", "body": {"pinCode": "2468", "name": "Clerk"}})
        assert event["body"] == {"pinCode": REDACTED, "name": "Clerk"}

    def test_other_values_untouched(self):
        event = {"event": "record_created", "entity": "customers", "id": "cust_1"}
        assert redact_sensitive(None, "info", dict(event)) == event
