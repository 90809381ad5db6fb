"""
Test Suite for Byte-Order Value Encoding
========================================

Tests validate:
    - Word layout of 16/32-bit integers and floats for LE, BE and SWAP
    - Truncation and masking of integer values
    - Decoding back to Python values
    - Trailing-space check when writing into a table
"""

import math
import unittest

from json_modbus.errors import InsufficientSpaceError
from json_modbus.modbus.protocols import (
    ByteOrder,
    DataType,
    ModbusDecoder,
    ModbusEncoder,
)
from json_modbus.modbus.register_map import RegisterTable, RegisterType


class TestByteOrderParsing(unittest.TestCase):
    """Test byte order name resolution"""

    def test_case_insensitive(self):
        self.assertIs(ByteOrder.parse("swap"), ByteOrder.SWAP)
        self.assertIs(ByteOrder.parse("Be"), ByteOrder.BE)
        self.assertIs(ByteOrder.parse("LE"), ByteOrder.LE)

    def test_unknown_name_rejected(self):
        with self.assertRaises(ValueError):
            ByteOrder.parse("MIDDLE")

    def test_non_string_rejected(self):
        with self.assertRaises(ValueError):
            ByteOrder.parse(5)


class TestEncoding(unittest.TestCase):
    """Test value to register word conversion"""

    def test_uint32_byte_orders(self):
        """0x12345678 in every ordering"""
        value = 0x12345678
        self.assertEqual(
            ModbusEncoder.encode(value, DataType.UINT32, ByteOrder.LE), [0x5678, 0x1234]
        )
        self.assertEqual(
            ModbusEncoder.encode(value, DataType.UINT32, ByteOrder.BE), [0x1234, 0x5678]
        )
        self.assertEqual(
            ModbusEncoder.encode(value, DataType.UINT32, ByteOrder.SWAP),
            [0x7856, 0x3412],
        )

    def test_float_uses_ieee754_bits(self):
        """1.5 is 0x3FC00000 in single precision"""
        self.assertEqual(
            ModbusEncoder.encode(1.5, DataType.FLOAT, ByteOrder.LE), [0x0000, 0x3FC0]
        )
        self.assertEqual(
            ModbusEncoder.encode(1.5, DataType.FLOAT, ByteOrder.BE), [0x3FC0, 0x0000]
        )
        self.assertEqual(
            ModbusEncoder.encode(1.5, DataType.FLOAT, ByteOrder.SWAP), [0x0000, 0xC03F]
        )

    def test_float_out_of_range_becomes_infinity(self):
        self.assertEqual(ModbusEncoder.encode(1e39, DataType.FLOAT), [0x0000, 0x7F80])
        self.assertEqual(ModbusEncoder.encode(-1e39, DataType.FLOAT), [0x0000, 0xFF80])
        self.assertEqual(ModbusEncoder.encode(10**400, DataType.FLOAT), [0x0000, 0x7F80])

    def test_single_word_orders(self):
        """BE is a no-op for one word, SWAP exchanges its bytes"""
        self.assertEqual(ModbusEncoder.encode(0x1234, DataType.UINT16, ByteOrder.LE), [0x1234])
        self.assertEqual(ModbusEncoder.encode(0x1234, DataType.UINT16, ByteOrder.BE), [0x1234])
        self.assertEqual(ModbusEncoder.encode(0x1234, DataType.UINT16, ByteOrder.SWAP), [0x3412])

    def test_negative_values_twos_complement(self):
        self.assertEqual(ModbusEncoder.encode(-1, DataType.INT16), [0xFFFF])
        self.assertEqual(ModbusEncoder.encode(-2, DataType.INT32), [0xFFFE, 0xFFFF])

    def test_integer_truncation_and_masking(self):
        self.assertEqual(ModbusEncoder.encode(70000, DataType.UINT16), [70000 & 0xFFFF])
        self.assertEqual(ModbusEncoder.encode(3.9, DataType.UINT16), [3])
        self.assertEqual(ModbusEncoder.encode(-3.9, DataType.INT16), [0xFFFD])

    def test_non_finite_integer_rejected(self):
        with self.assertRaises(ValueError):
            ModbusEncoder.encode(float("nan"), DataType.INT32)
        with self.assertRaises(ValueError):
            ModbusEncoder.encode(float("inf"), DataType.UINT16)


class TestDecoding(unittest.TestCase):
    """Test register word to value conversion"""

    def test_decode_inverts_encode(self):
        cases = [
            (0x12345678, DataType.UINT32),
            (-123456, DataType.INT32),
            (-300, DataType.INT16),
            (65535, DataType.UINT16),
        ]
        for value, data_type in cases:
            for order in ByteOrder:
                with self.subTest(value=value, data_type=data_type, order=order):
                    words = ModbusEncoder.encode(value, data_type, order)
                    self.assertEqual(ModbusDecoder.decode(words, data_type, order), value)

    def test_decode_float(self):
        self.assertEqual(
            ModbusDecoder.decode([0x3FC0, 0x0000], DataType.FLOAT, ByteOrder.BE), 1.5
        )
        self.assertAlmostEqual(
            ModbusDecoder.decode(
                ModbusEncoder.encode(math.pi, DataType.FLOAT), DataType.FLOAT
            ),
            math.pi,
            places=6,
        )

    def test_decode_too_few_words(self):
        with self.assertRaises(ValueError):
            ModbusDecoder.decode([1], DataType.UINT32)


class TestWriteValue(unittest.TestCase):
    """Test writing encoded values into a holding register table"""

    def setUp(self):
        self.table = RegisterTable(RegisterType.HOLDING_REGISTER, 100, 4)

    def test_write_at_index(self):
        words = ModbusEncoder.write_value(
            self.table, 1, 0x12345678, DataType.UINT32, ByteOrder.BE
        )
        self.assertEqual(words, [0x1234, 0x5678])
        self.assertEqual(self.table.read(100, 4), [0, 0x1234, 0x5678, 0])

    def test_last_word_fits_single_word_type(self):
        ModbusEncoder.write_value(self.table, 3, 7, DataType.UINT16)
        self.assertEqual(self.table.read(103), [7])

    def test_insufficient_space(self):
        with self.assertRaises(InsufficientSpaceError) as ctx:
            ModbusEncoder.write_value(self.table, 3, 1.0, DataType.FLOAT)

        self.assertEqual(
            ctx.exception.to_response(),
            {"error": "insufficient_space", "address": 103},
        )
        self.assertEqual(self.table.read(100, 4), [0, 0, 0, 0])


if __name__ == "__main__":
    unittest.main()
