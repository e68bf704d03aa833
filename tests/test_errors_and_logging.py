from __future__ import annotations

import json
import logging
import unittest

from punchclock.errors import (
    RecordLookupError,
    ScanError,
    TransactionError,
    classify_domain_error,
)
from punchclock.logging_utils import JsonFormatter


def _transaction_error_from(cause: Exception) -> TransactionError:
    try:
        raise TransactionError("failed", step="lookup_user_state", uid=1) from cause
    except TransactionError as exc:
        return exc


class DomainErrorMappingTests(unittest.TestCase):
    def test_transaction_errors_are_classified_by_cause(self) -> None:
        missing = _transaction_error_from(RecordLookupError("gone", step="lookup_user_state", uid=1))
        corrupt = _transaction_error_from(ScanError("bad", step="scan_user_state", uid=1))
        other = _transaction_error_from(RuntimeError("db down"))

        self.assertEqual(classify_domain_error(missing), (404, "USER_STATE_NOT_FOUND"))
        self.assertEqual(classify_domain_error(corrupt), (500, "CORRUPT_ROW"))
        self.assertEqual(classify_domain_error(other), (503, "TRANSACTION_FAILED"))

    def test_plain_lookup_and_scan_errors(self) -> None:
        self.assertEqual(classify_domain_error(RecordLookupError("x", step="lookup_entry")), (404, "NOT_FOUND"))
        self.assertEqual(classify_domain_error(ScanError("x", step="scan_entry")), (500, "CORRUPT_ROW"))

    def test_lookup_error_is_a_builtin_lookup_error(self) -> None:
        self.assertIsInstance(RecordLookupError("x", step="s"), LookupError)

    def test_log_context_names_the_step(self) -> None:
        context = TransactionError("commit failed", step="commit_clock_out", uid=9).log_context()

        self.assertEqual(context, {"step": "commit_clock_out", "uid": 9, "error": "commit failed"})


class JsonFormatterTests(unittest.TestCase):
    def test_extra_fields_are_merged_into_payload(self) -> None:
        record = logging.LogRecord("punchclock.clock", logging.INFO, __file__, 1, "clock_in_noop", None, None)
        record.uid = 4
        record.since = 100

        payload = json.loads(JsonFormatter(service="Punchclock").format(record))

        self.assertEqual(payload["event"], "clock_in_noop")
        self.assertEqual(payload["logger"], "punchclock.clock")
        self.assertEqual(payload["service"], "Punchclock")
        self.assertEqual((payload["uid"], payload["since"]), (4, 100))
        self.assertNotIn("msg", payload)


if __name__ == "__main__":
    unittest.main()
