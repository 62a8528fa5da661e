import json
import logging
import unittest

from bifrost.common.utils.logger import JSONFormatter, LogBuffer, setup_logger

class TestJSONLogging(unittest.TestCase):
    def test_formatter_fields(self):
        record = logging.LogRecord("bifrost.test", logging.WARNING, __file__, 1, "job %s failed", ("mnist",), None)
        record.event = "provision_failed"
        record.job_name = "alice~mnist"

        doc = json.loads(JSONFormatter().format(record))
        self.assertEqual(doc["level"], "WARNING")
        self.assertEqual(doc["logger"], "bifrost.test")
        self.assertEqual(doc["message"], "job mnist failed")
        self.assertEqual(doc["event"], "provision_failed")
        self.assertEqual(doc["job_name"], "alice~mnist")

    def test_defaults_without_extra(self):
        record = logging.LogRecord("bifrost.test", logging.INFO, __file__, 1, "hello", (), None)
        doc = json.loads(JSONFormatter().format(record))
        self.assertEqual(doc["event"], "log")
        self.assertIsNone(doc["job_name"])

    def test_buffer_is_bounded(self):
        buffer = LogBuffer(capacity=3)
        buffer.setFormatter(JSONFormatter())
        for i in range(5):
            buffer.emit(logging.LogRecord("bifrost.test", logging.INFO, __file__, 1, f"m{i}", (), None))
        self.assertEqual([r["message"] for r in buffer.records], ["m2", "m3", "m4"])

    def test_setup_logger_feeds_buffer(self):
        logger, buffer = setup_logger("bifrost.test.setup", level=logging.DEBUG)
        logger.info("submitted", extra={"event": "job_submitted", "job_name": "mnist"})

        self.assertFalse(logger.propagate)
        last = buffer.records[-1]
        self.assertEqual((last["event"], last["job_name"]), ("job_submitted", "mnist"))

    def test_tail_filters(self):
        buffer = LogBuffer(capacity=10)
        buffer.setFormatter(JSONFormatter())
        for level, job in ((logging.INFO, "a"), (logging.WARNING, "b"), (logging.ERROR, "a"), (logging.DEBUG, None)):
            record = logging.LogRecord("bifrost.test", level, __file__, 1, "msg", (), None)
            record.job_name = job
            buffer.emit(record)

        self.assertEqual([r["level"] for r in buffer.tail(job_name="a")], ["INFO", "ERROR"])
        self.assertEqual([r["level"] for r in buffer.tail(level="warning")], ["WARNING", "ERROR"])
        self.assertEqual(len(buffer.tail(limit=2)), 2)
        self.assertEqual(buffer.tail(limit=0), [])

if __name__ == '__main__':
    unittest.main()
