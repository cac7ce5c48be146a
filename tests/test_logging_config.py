"""
Tests for astro_core.logging_config — formatter output and root setup.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
import unittest

from astro_core.errors import ConfigurationError
from astro_core.logging_config import _HumanFormatter, _JSONFormatter, setup_logging
from astro_core.registry import EndpointRegistry


def _record(msg="node rotated", level=logging.WARNING, exc_info=None):
    return logging.LogRecord("astro_registry", level, __file__, 1, msg, None, exc_info)


class TestFormatters(unittest.TestCase):

    def test_json_fields(self):
        obj = json.loads(_JSONFormatter().format(_record()))
        self.assertEqual(obj["level"], "WARNING")
        self.assertEqual(obj["logger"], "astro_registry")
        self.assertEqual(obj["msg"], "node rotated")
        self.assertIn("ts", obj)

    def test_json_exception(self):
        try:
            raise RuntimeError("socket closed")
        except RuntimeError:
            record = _record(exc_info=sys.exc_info())
        obj = json.loads(_JSONFormatter().format(record))
        self.assertIn("socket closed", obj["exception"])

    def test_human_line(self):
        line = _HumanFormatter(colour=False).format(_record(level=logging.INFO))
        self.assertIn("astro_registry: node rotated", line)
        self.assertIn("[INFO   ]", line)
        self.assertNotIn("\033[", line)

    def test_context_fields(self):
        record = _record()
        record.chain = "bitshares"
        record.endpoint = "wss://a"
        obj = json.loads(_JSONFormatter().format(record))
        self.assertEqual((obj["chain"], obj["endpoint"]), ("bitshares", "wss://a"))
        line = _HumanFormatter(colour=False).format(record)
        self.assertIn("astro_registry [bitshares wss://a]: node rotated", line)

    def test_registry_rotation_carries_context(self):
        reg = EndpointRegistry({"bitshares": ["wss://x", "wss://y"]})
        with self.assertLogs("astro_registry", level="WARNING") as captured:
            reg.rotate("bitshares")
        record = captured.records[0]
        self.assertEqual(record.chain, "bitshares")
        self.assertEqual(record.endpoint, "wss://x")


class TestSetupLogging(unittest.TestCase):

    def tearDown(self):
        root = logging.getLogger()
        for handler in root.handlers:
            handler.close()
        root.handlers.clear()

    def test_level_and_single_console_handler(self):
        setup_logging("debug")
        setup_logging("DEBUG")
        root = logging.getLogger()
        self.assertEqual(root.level, logging.DEBUG)
        self.assertEqual(len(root.handlers), 1)
        self.assertEqual(logging.getLogger("aiohttp.access").level, logging.WARNING)

    def test_unknown_level_or_format_rejected(self):
        with self.assertRaises(ConfigurationError):
            setup_logging("LOUD")
        with self.assertRaises(ConfigurationError):
            setup_logging("INFO", fmt="xml")

    def test_log_file_is_json(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "logs", "gateway.log")
            setup_logging("INFO", "human", path)
            logging.getLogger("astro_session").info("opened wss://a")
            for handler in logging.getLogger().handlers:
                handler.flush()
            with open(path, encoding="utf-8") as f:
                obj = json.loads(f.readline())
            self.tearDown()
        self.assertEqual(obj["msg"], "opened wss://a")
