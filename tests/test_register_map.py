"""
Test Suite for the Register Map
===============================

Tests validate:
    - Absolute address translation and bounds checking
    - Bit coercion and word range checks
    - Allocation from server configuration
"""

import unittest

from json_modbus.config import RegisterBlock, ServerConfig
from json_modbus.modbus.register_map import ModbusRegisterMap, RegisterTable, RegisterType


class TestRegisterTable(unittest.TestCase):
    """Test a single bounds-checked table"""

    def setUp(self):
        self.table = RegisterTable(RegisterType.HOLDING_REGISTER, 100, 10)

    def test_window(self):
        self.assertTrue(self.table.contains(100))
        self.assertTrue(self.table.contains(109))
        self.assertFalse(self.table.contains(99))
        self.assertFalse(self.table.contains(110))
        self.assertTrue(self.table.contains(108, 2))
        self.assertFalse(self.table.contains(109, 2))
        self.assertFalse(self.table.contains(100, 0))
        self.assertEqual(self.table.end_address, 110)
        self.assertEqual(len(self.table), 10)

    def test_initially_zero(self):
        self.assertEqual(self.table.read(100, 10), [0] * 10)

    def test_write_read_absolute_and_index(self):
        self.table.write(105, [1, 2])
        self.assertEqual(self.table.read(105, 2), [1, 2])
        self.assertEqual(self.table.read_at(5, 2), [1, 2])
        self.assertEqual(self.table.index_of(105), 5)

        self.table.write_at(0, [0xFFFF])
        self.assertEqual(self.table.read(100), [0xFFFF])

    def test_out_of_range_access(self):
        with self.assertRaises(IndexError):
            self.table.read(99, 1)
        with self.assertRaises(IndexError):
            self.table.read(109, 2)
        with self.assertRaises(IndexError):
            self.table.write(110, [1])

    def test_word_range(self):
        with self.assertRaises(ValueError):
            self.table.write(100, [0x10000])
        with self.assertRaises(ValueError):
            self.table.write(100, [-1])

    def test_bits_coerced(self):
        coils = RegisterTable(RegisterType.COIL, 0, 4)
        coils.write(0, [5, 0, True, 0])
        self.assertEqual(coils.read(0, 4), [1, 0, 1, 0])

    def test_empty_table(self):
        empty = RegisterTable(RegisterType.INPUT_REGISTER, 0, 0)
        self.assertFalse(empty.contains(0))
        with self.assertRaises(IndexError):
            empty.read(0, 1)

    def test_invalid_layout(self):
        with self.assertRaises(ValueError):
            RegisterTable(RegisterType.COIL, -1, 10)


class TestModbusRegisterMap(unittest.TestCase):
    """Test the four-table map"""

    def test_from_config(self):
        config = ServerConfig(
            coils=RegisterBlock(0, 16),
            discrete_inputs=RegisterBlock(10, 8),
            holding_registers=RegisterBlock(100, 50),
            input_registers=RegisterBlock(200, 20),
        )
        reg_map = ModbusRegisterMap.from_config(config)

        self.assertEqual(reg_map.coils.count, 16)
        self.assertEqual(reg_map.discrete_inputs.start_address, 10)
        self.assertEqual(reg_map.holding_registers.end_address, 150)
        self.assertEqual(reg_map.input_registers.count, 20)
        self.assertIs(
            reg_map.table(RegisterType.HOLDING_REGISTER), reg_map.holding_registers
        )

    def test_tables_are_independent(self):
        reg_map = ModbusRegisterMap(holding_registers=(0, 4), input_registers=(0, 4))
        reg_map.holding_registers.write(0, [42])
        self.assertEqual(reg_map.input_registers.read(0), [0])

    def test_describe(self):
        reg_map = ModbusRegisterMap(coils=(0, 8))
        self.assertIn("coil=[0+8]", reg_map.describe())


if __name__ == "__main__":
    unittest.main()
