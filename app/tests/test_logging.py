import logging
import unittest

from app.core.logging import _ContextFilter, get_request_id, log_context, set_log_context


class TestLogContext(unittest.TestCase):
    def test_log_context_restores_previous_request_id(self):
        set_log_context(request_id="outer")
        with log_context(request_id="inner"):
            self.assertEqual(get_request_id(), "inner")
        self.assertEqual(get_request_id(), "outer")

    def test_filter_tags_records_with_request_id(self):
        record = logging.LogRecord("translate", logging.INFO, __file__, 1, "msg", None, None)
        with log_context(request_id="req-9"):
            self.assertTrue(_ContextFilter().filter(record))
        self.assertEqual(record.request_id, "req-9")


if __name__ == "__main__":
    unittest.main()
