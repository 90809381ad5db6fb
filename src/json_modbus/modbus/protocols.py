"""
Modbus Value Encoding/Decoding
==============================

Byte-order aware conversion between Python numbers and 16-bit Modbus words.

This module handles ONLY data format conversion:
- Python ints -> one register (uint16, int16) or two registers (uint32, int32)
- Python floats -> two registers holding the IEEE 754 single precision bits
- Word/byte ordering (LE, BE, SWAP)

Canonical word layout (LE) is low word first:

    words[0] = value & 0xFFFF
    words[1] = value >> 16

SWAP exchanges the two bytes inside every word. BE exchanges the order of
the two words of a 32-bit value and is a no-op for single-word values.

Example, uint32 0x12345678:
    LE   -> [0x5678, 0x1234]
    BE   -> [0x1234, 0x5678]
    SWAP -> [0x7856, 0x3412]

No I/O, no protocol logic.

Date: October 2026
License: MIT
"""

import math
from enum import Enum
from typing import List, Sequence, Union

import numpy as np

from ..errors import InsufficientSpaceError
from .register_map import RegisterTable

Number = Union[int, float]


class DataType(Enum):
    """Value types accepted by data-update commands."""

    UINT16 = "uint16"
    INT16 = "int16"
    UINT32 = "uint32"
    INT32 = "int32"
    FLOAT = "float"

    @property
    def word_count(self) -> int:
        """Number of 16-bit registers a value of this type occupies."""
        return 1 if self in (DataType.UINT16, DataType.INT16) else 2

    @property
    def is_integer(self) -> bool:
        return self is not DataType.FLOAT


class ByteOrder(Enum):
    """Word/byte ordering of encoded values."""

    LE = "LE"
    BE = "BE"
    SWAP = "SWAP"

    @classmethod
    def parse(cls, text: str) -> "ByteOrder":
        """
        Resolve a byte order name, case-insensitively.

        Raises:
            ValueError: If the name is not LE, BE or SWAP
        """
        try:
            return cls(text.upper())
        except (AttributeError, ValueError):
            raise ValueError(f"Unknown byte order: {text!r}") from None


class ModbusEncoder:
    """
    Encoder for converting Python values to Modbus register format.

    Modbus uses 16-bit registers. 32-bit values are stored in two
    consecutive registers, ordered according to ByteOrder.
    """

    @staticmethod
    def to_raw_bits(value: Number, data_type: DataType) -> int:
        """
        Reduce a value to its unsigned bit pattern.

        Integers are truncated toward zero and masked to 16 or 32 bits
        (two's complement for negative values). Floats are converted to
        IEEE 754 single precision; out-of-range values become +/-inf.

        Raises:
            ValueError: If an integer type is given a non-finite value
        """
        if data_type is DataType.FLOAT:
            try:
                as_float = float(value)
            except OverflowError:
                # Integer too large for a double
                as_float = math.inf if value > 0 else -math.inf
            with np.errstate(over="ignore"):
                as_f32 = np.array([as_float], dtype=np.float32)
            return int(as_f32.view(np.uint32)[0])

        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError(f"{data_type.value} value must be finite, got {value}")

        mask = 0xFFFF if data_type.word_count == 1 else 0xFFFFFFFF
        return int(value) & mask

    @staticmethod
    def split_words(bits: int, word_count: int) -> List[int]:
        """Split a bit pattern into words, low word first."""
        if word_count == 1:
            return [bits & 0xFFFF]
        return [bits & 0xFFFF, (bits >> 16) & 0xFFFF]

    @staticmethod
    def apply_byte_order(words: Sequence[int], byte_order: ByteOrder) -> List[int]:
        """
        Reorder canonical (low word first) words for the requested byte order.

        Args:
            words: One or two 16-bit words, low word first
            byte_order: Target ordering

        Returns:
            New list of 16-bit words
        """
        ordered = np.array(words, dtype=np.uint16)

        if byte_order is ByteOrder.SWAP:
            ordered = ordered.byteswap()
        elif byte_order is ByteOrder.BE and len(ordered) == 2:
            ordered = ordered[::-1]

        return [int(w) for w in ordered]

    @classmethod
    def encode(
        cls, value: Number, data_type: DataType, byte_order: ByteOrder = ByteOrder.LE
    ) -> List[int]:
        """
        Encode a value into register words.

        Example:
            >>> ModbusEncoder.encode(0x12345678, DataType.UINT32, ByteOrder.BE)
            [4660, 22136]
        """
        bits = cls.to_raw_bits(value, data_type)
        words = cls.split_words(bits, data_type.word_count)
        return cls.apply_byte_order(words, byte_order)

    @classmethod
    def write_value(
        cls,
        table: RegisterTable,
        index: int,
        value: Number,
        data_type: DataType,
        byte_order: ByteOrder = ByteOrder.LE,
    ) -> List[int]:
        """
        Encode a value and store it at a zero-based table index.

        The caller has already checked that index itself is inside the table.

        Raises:
            InsufficientSpaceError: If the value's trailing words do not fit

        Returns:
            The words written
        """
        if index + data_type.word_count > table.count:
            raise InsufficientSpaceError(address=table.start_address + index)

        words = cls.encode(value, data_type, byte_order)
        table.write_at(index, words)
        return words


class ModbusDecoder:
    """
    Decoder for converting Modbus register format to Python values.

    Performs the inverse operations of ModbusEncoder.
    """

    @staticmethod
    def decode(
        words: Sequence[int], data_type: DataType, byte_order: ByteOrder = ByteOrder.LE
    ) -> Number:
        """
        Decode register words back into a Python value.

        Args:
            words: Registers as stored in the table
            data_type: Type the words were encoded as
            byte_order: Ordering used when encoding

        Returns:
            int for integer types, float for FLOAT
        """
        if len(words) < data_type.word_count:
            raise ValueError(
                f"{data_type.value} needs {data_type.word_count} words, got {len(words)}"
            )

        # Every ordering is its own inverse
        canonical = ModbusEncoder.apply_byte_order(
            words[: data_type.word_count], byte_order
        )

        if data_type.word_count == 1:
            bits = canonical[0]
        else:
            bits = canonical[0] | (canonical[1] << 16)

        if data_type is DataType.UINT16 or data_type is DataType.UINT32:
            return bits
        if data_type is DataType.INT16:
            return bits - 0x10000 if bits & 0x8000 else bits
        if data_type is DataType.INT32:
            return bits - 0x100000000 if bits & 0x80000000 else bits

        return float(np.array([bits], dtype=np.uint32).view(np.float32)[0])
