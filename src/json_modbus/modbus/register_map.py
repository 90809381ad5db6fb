"""
Modbus Register Map
===================

Shared storage for the four classic Modbus tables.

Each table has a configured absolute start address and a count fixed at
allocation time. Addresses presented externally (JSON commands, Modbus
requests) are absolute and are translated here to a zero-based index.

Register Types:
- Coils (FC 01/05/15): Read/write bits
- Discrete Inputs (FC 02): Read-only bits
- Holding Registers (FC 03/06/16/22/23): Read/write 16-bit words
- Input Registers (FC 04): Read-only 16-bit words

"Read-only" refers to the Modbus side only: operators may still set any
table through the register map accessors.

This module contains ONLY storage and bounds checking - it does not:
- Parse requests
- Encode multi-word values
- Know about transports

Date: October 2026
License: MIT
"""

from typing import Dict, List, Sequence
from enum import IntEnum

import numpy as np

from ..config import ServerConfig


class RegisterType(IntEnum):
    """Modbus register types."""

    COIL = 0  # Discrete output (read/write)
    DISCRETE_INPUT = 1  # Discrete input (read-only)
    INPUT_REGISTER = 3  # Analog input (read-only)
    HOLDING_REGISTER = 4  # Analog output (read/write)

    @property
    def is_bit(self) -> bool:
        return self in (RegisterType.COIL, RegisterType.DISCRETE_INPUT)


class RegisterTable:
    """
    One bounds-checked register table backed by a numpy word array.

    Attributes:
        register_type: Which Modbus table this is
        start_address: First absolute address of the table
        count: Number of points in the table
    """

    def __init__(self, register_type: RegisterType, start_address: int, count: int):
        if start_address < 0 or count < 0:
            raise ValueError(
                f"Invalid {register_type.name} table: start={start_address}, count={count}"
            )

        self.register_type = register_type
        self.start_address = start_address
        self.count = count
        self._values = np.zeros(count, dtype=np.uint16)

    @property
    def end_address(self) -> int:
        """One past the last valid absolute address."""
        return self.start_address + self.count

    def contains(self, address: int, count: int = 1) -> bool:
        """Check that [address, address + count) lies inside the table."""
        return count >= 1 and self.start_address <= address and (
            address + count <= self.end_address
        )

    def index_of(self, address: int) -> int:
        """Translate an absolute address to a zero-based table index."""
        return address - self.start_address

    def read(self, address: int, count: int = 1) -> List[int]:
        """
        Read values starting at an absolute address.

        Raises:
            IndexError: If any requested address lies outside the table
        """
        if not self.contains(address, count):
            raise IndexError(
                f"{self.register_type.name} read [{address}, {address + count}) "
                f"outside [{self.start_address}, {self.end_address})"
            )
        index = self.index_of(address)
        return [int(v) for v in self._values[index : index + count]]

    def write(self, address: int, values: Sequence[int]):
        """
        Write values starting at an absolute address.

        Bit tables store any truthy value as 1.

        Raises:
            IndexError: If any target address lies outside the table
            ValueError: If a word value does not fit in 16 bits
        """
        values = list(values)
        if not self.contains(address, len(values)):
            raise IndexError(
                f"{self.register_type.name} write [{address}, {address + len(values)}) "
                f"outside [{self.start_address}, {self.end_address})"
            )

        if self.register_type.is_bit:
            values = [1 if v else 0 for v in values]
        else:
            for v in values:
                if not 0 <= v <= 0xFFFF:
                    raise ValueError(f"Register value {v} out of range [0, 65535]")

        index = self.index_of(address)
        self._values[index : index + len(values)] = values

    def read_at(self, index: int, count: int = 1) -> List[int]:
        """Read by zero-based table index."""
        return self.read(self.start_address + index, count)

    def write_at(self, index: int, values: Sequence[int]):
        """Write by zero-based table index."""
        self.write(self.start_address + index, values)

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        return (
            f"RegisterTable({self.register_type.name}, "
            f"start={self.start_address}, count={self.count})"
        )


class ModbusRegisterMap:
    """
    The four Modbus tables of one slave.

    One instance exists per RUNNING period of the server; it is the single
    source of truth for every transport and for the JSON command interpreter.
    """

    def __init__(
        self,
        coils: tuple = (0, 0),
        discrete_inputs: tuple = (0, 0),
        holding_registers: tuple = (0, 0),
        input_registers: tuple = (0, 0),
    ):
        """
        Allocate the register map.

        Args:
            coils: (start_address, count) of the coil table
            discrete_inputs: (start_address, count) of the discrete input table
            holding_registers: (start_address, count) of the holding register table
            input_registers: (start_address, count) of the input register table
        """
        self.tables: Dict[RegisterType, RegisterTable] = {
            RegisterType.COIL: RegisterTable(RegisterType.COIL, *coils),
            RegisterType.DISCRETE_INPUT: RegisterTable(
                RegisterType.DISCRETE_INPUT, *discrete_inputs
            ),
            RegisterType.HOLDING_REGISTER: RegisterTable(
                RegisterType.HOLDING_REGISTER, *holding_registers
            ),
            RegisterType.INPUT_REGISTER: RegisterTable(
                RegisterType.INPUT_REGISTER, *input_registers
            ),
        }

    @classmethod
    def from_config(cls, config: ServerConfig) -> "ModbusRegisterMap":
        """Allocate a register map sized from the server configuration."""
        return cls(
            coils=(config.coils.start_address, config.coils.count),
            discrete_inputs=(
                config.discrete_inputs.start_address,
                config.discrete_inputs.count,
            ),
            holding_registers=(
                config.holding_registers.start_address,
                config.holding_registers.count,
            ),
            input_registers=(
                config.input_registers.start_address,
                config.input_registers.count,
            ),
        )

    @property
    def coils(self) -> RegisterTable:
        return self.tables[RegisterType.COIL]

    @property
    def discrete_inputs(self) -> RegisterTable:
        return self.tables[RegisterType.DISCRETE_INPUT]

    @property
    def holding_registers(self) -> RegisterTable:
        return self.tables[RegisterType.HOLDING_REGISTER]

    @property
    def input_registers(self) -> RegisterTable:
        return self.tables[RegisterType.INPUT_REGISTER]

    def table(self, register_type: RegisterType) -> RegisterTable:
        return self.tables[register_type]

    def describe(self) -> str:
        """One-line layout summary for logging."""
        return ", ".join(
            f"{t.register_type.name.lower()}=[{t.start_address}+{t.count}]"
            for t in self.tables.values()
        )
