"""
Test Suite for Configuration Loading
====================================

Tests validate:
    - Defaults when the file is missing
    - Mode string parsing and register block forms
    - Rejection of malformed or out-of-range values
"""

import json
import tempfile
import unittest
from pathlib import Path

from json_modbus.config import (
    RegisterBlock,
    ServerConfig,
    config_from_dict,
    load_config,
)
from json_modbus.errors import ConfigError


class TestLoadConfig(unittest.TestCase):
    """Test reading configuration files"""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "modbus_config.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_missing_file_uses_defaults(self):
        config = load_config(str(self.path))
        self.assertEqual(config, ServerConfig())
        self.assertTrue(config.enable_tcp)
        self.assertFalse(config.enable_rtu)
        self.assertEqual(config.tcp_port, 1502)
        self.assertEqual(config.serial.device, "/dev/ttyUSB0")

    def test_full_file(self):
        self.path.write_text(
            json.dumps(
                {
                    "mode": "tcp+rtu",
                    "tcp_port": 5020,
                    "unit_id": 17,
                    "serial": {"device": "/dev/ttyS1", "baudrate": 19200, "parity": "even"},
                    "coils": {"start_address": 0, "count": 100},
                    "input_bits": [10, 20],
                    "holding_registers": {"start_address": 1000, "count": 50},
                    "input_registers": [0, 8],
                }
            )
        )
        config = load_config(str(self.path))

        self.assertTrue(config.enable_tcp)
        self.assertTrue(config.enable_rtu)
        self.assertEqual(config.tcp_port, 5020)
        self.assertEqual(config.unit_id, 17)
        self.assertEqual(config.serial.device, "/dev/ttyS1")
        self.assertEqual(config.serial.parity, "E")
        self.assertEqual(config.serial.data_bits, 8)
        self.assertEqual(config.discrete_inputs, RegisterBlock(10, 20))
        self.assertEqual(config.holding_registers, RegisterBlock(1000, 50))
        self.assertEqual(config.input_registers, RegisterBlock(0, 8))

    def test_invalid_json(self):
        self.path.write_text("{not json")
        with self.assertRaises(ConfigError):
            load_config(str(self.path))


class TestConfigFromDict(unittest.TestCase):
    """Test validation of parsed configuration"""

    def test_mode_selects_transports(self):
        self.assertEqual(
            (config_from_dict({"mode": "rtu"}).enable_tcp,
             config_from_dict({"mode": "rtu"}).enable_rtu),
            (False, True),
        )
        config = config_from_dict({"mode": "TCP"})
        self.assertTrue(config.enable_tcp)
        self.assertFalse(config.enable_rtu)

    def test_invalid_values(self):
        bad = [
            [],
            {"mode": 1},
            {"tcp_port": 0},
            {"tcp_port": "502"},
            {"unit_id": 248},
            {"serial": {"parity": "X"}},
            {"serial": {"stop_bits": 3}},
            {"serial": "COM1"},
            {"holding_registers": {"start_address": 65000, "count": 1000}},
            {"coils": {"start_address": 0, "count": -1}},
            {"coils": [0]},
            {"coils": ["0", 10]},
        ]
        for raw in bad:
            with self.subTest(raw=raw):
                with self.assertRaises(ConfigError):
                    config_from_dict(raw)

    def test_full_address_space_allowed(self):
        config = config_from_dict({"holding_registers": [0, 65536]})
        self.assertEqual(config.holding_registers.count, 65536)


if __name__ == "__main__":
    unittest.main()
