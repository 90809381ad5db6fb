"""
Modbus Package
==============

Register storage and the Modbus protocol layer of the JSON Modbus server.

This package provides:
- Register map (four bounds-checked tables backed by numpy arrays)
- Value encoding/decoding with LE/BE/SWAP byte orders
- Modbus request execution through pymodbus framers and request PDUs

It does NOT:
- Own sockets or serial ports
- Parse JSON commands
- Decide when the server starts or stops

Components:
- register_map.py: Register tables and address translation
- protocols.py: Data encoding/decoding
- engine.py: Function code execution and framing

Usage Example:
>>> from json_modbus.modbus import ModbusRegisterMap, ModbusEngine
>>>
>>> reg_map = ModbusRegisterMap(holding_registers=(0, 10))
>>> engine = ModbusEngine(reg_map, unit_id=1)
>>>
>>> # Read Holding Registers, address 0, quantity 2
>>> engine.execute_pdu(bytes([0x03, 0x00, 0x00, 0x00, 0x02]))
b'\\x03\\x04\\x00\\x00\\x00\\x00'

Dependencies:
- pymodbus: Python Modbus library (framing, CRC, request decoding and execution)
- numpy: register storage, float32 bit patterns and byte swapping

Date: October 2026
License: MIT
"""

from .register_map import ModbusRegisterMap, RegisterTable, RegisterType

from .protocols import ByteOrder, DataType, ModbusDecoder, ModbusEncoder

from .engine import ModbusEngine, RegisterMapDatastore, rtu_crc

__all__ = [
    # Register mapping
    "ModbusRegisterMap",
    "RegisterTable",
    "RegisterType",
    # Encoding/decoding
    "ByteOrder",
    "DataType",
    "ModbusEncoder",
    "ModbusDecoder",
    # Protocol engine
    "ModbusEngine",
    "RegisterMapDatastore",
    "rtu_crc",
]
