"""
Modbus Protocol Engine
======================

Executes raw Modbus requests against a register map and builds the replies.

Wire handling is delegated to pymodbus:
- FramerSocket splits MBAP frames and builds MBAP replies
- FramerRTU checks and appends the CRC-16 of serial frames
- DecodePDU (server side) turns request bytes into request objects
- Each request object runs itself against the register map through
  its datastore_update() coroutine

The register map is presented to pymodbus through RegisterMapDatastore,
which implements the async_getValues/async_setValues datastore contract.
pymodbus coroutines are driven on a private asyncio loop owned by the
engine, so the caller stays single-threaded and synchronous.

MBAP (Modbus TCP, 7-byte header + PDU):
    Transaction ID:  2 bytes
    Protocol ID:     2 bytes (always 0x0000)
    Length:          2 bytes (byte count of Unit ID + PDU)
    Unit ID:         1 byte

RTU (serial):
    Slave address:   1 byte (0 = broadcast, executed without reply)
    PDU:             Variable
    CRC-16/Modbus:   2 bytes, low byte first

Supported Function Codes:
    FC01: Read Coils
    FC02: Read Discrete Inputs
    FC03: Read Holding Registers
    FC04: Read Input Registers
    FC05: Write Single Coil
    FC06: Write Single Register
    FC15: Write Multiple Coils
    FC16: Write Multiple Registers
    FC22: Mask Write Register
    FC23: Read/Write Multiple Registers

Date: October 2026
License: MIT
"""

import asyncio
import logging
import struct
from typing import Dict, List, Optional, Sequence, Union

from pymodbus.constants import ExcCodes
from pymodbus.framer import FramerRTU, FramerSocket
from pymodbus.pdu import DecodePDU, ExceptionResponse, ModbusPDU

from .register_map import ModbusRegisterMap, RegisterType

logger = logging.getLogger(__name__)

MBAP_HEADER_SIZE = 7
MAX_ADU_SIZE = 260
RTU_BROADCAST_ADDRESS = 0

SUPPORTED_FUNCTION_CODES = (1, 2, 3, 4, 5, 6, 15, 16, 22, 23)

# Function code -> table it addresses
FUNCTION_TABLES = {
    1: RegisterType.COIL,
    5: RegisterType.COIL,
    15: RegisterType.COIL,
    2: RegisterType.DISCRETE_INPUT,
    3: RegisterType.HOLDING_REGISTER,
    6: RegisterType.HOLDING_REGISTER,
    16: RegisterType.HOLDING_REGISTER,
    22: RegisterType.HOLDING_REGISTER,
    23: RegisterType.HOLDING_REGISTER,
    4: RegisterType.INPUT_REGISTER,
}

# FC05 accepts only OFF (0x0000) and ON (0xFF00)
COIL_VALUES = (b"\x00\x00", b"\xff\x00")

_request_decoder = DecodePDU(is_server=True)


def rtu_crc(data: bytes) -> bytes:
    """CRC-16/Modbus of data as it appears on the wire (low byte first)."""
    return FramerRTU.compute_CRC(data).to_bytes(2, "big")


def tcp_frame_length(buffer: bytes) -> Optional[int]:
    """
    Total ADU length announced by a buffered MBAP header.

    Returns:
        Length in bytes, or None while the header is incomplete
    """
    if len(buffer) < 6:
        return None
    (length,) = struct.unpack(">H", buffer[4:6])
    return 6 + length


def rtu_request_length(buffer: bytes) -> Optional[int]:
    """
    Expected length of a buffered RTU request, derived from its function code.

    Returns:
        Length in bytes, or None if not yet determinable (or the function
        code is not served, in which case the frame ends at the next line
        silence)
    """
    if len(buffer) < 2 or buffer[1] not in SUPPORTED_FUNCTION_CODES:
        return None

    request_class = _request_decoder.lookupPduClass(bytes(buffer))
    if request_class is None:
        return None
    return request_class.calculateRtuFrameSize(bytes(buffer)) or None


class RegisterMapDatastore:
    """
    pymodbus datastore view of a register map.

    Every device id resolves to the same register map; unit filtering is
    done by the engine before a request reaches the datastore.
    """

    def __init__(self, register_map: ModbusRegisterMap):
        self.register_map = register_map

    async def async_getValues(
        self, device_id: int, func_code: int, address: int, count: int = 1
    ) -> Union[List[int], List[bool], ExcCodes]:
        table = self.register_map.table(FUNCTION_TABLES[func_code])
        if not table.contains(address, count):
            return ExcCodes.ILLEGAL_ADDRESS

        values = table.read(address, count)
        if table.register_type.is_bit:
            return [bool(v) for v in values]
        return values

    async def async_setValues(
        self,
        device_id: int,
        func_code: int,
        address: int,
        values: Sequence[Union[int, bool]],
    ) -> Optional[ExcCodes]:
        table = self.register_map.table(FUNCTION_TABLES[func_code])
        if not table.contains(address, len(values)):
            return ExcCodes.ILLEGAL_ADDRESS

        table.write(address, [int(v) for v in values])
        return None


class ModbusEngine:
    """
    Modbus slave request processor bound to one register map.

    Statistics are kept per function code for diagnostics.
    """

    def __init__(self, register_map: ModbusRegisterMap, unit_id: int):
        """
        Initialize the engine.

        Args:
            register_map: Tables every request reads and writes
            unit_id: Slave address answered on the RTU link
        """
        self.register_map = register_map
        self.unit_id = unit_id
        self.datastore = RegisterMapDatastore(register_map)

        self.decoder = DecodePDU(is_server=True)
        self.tcp_framer = FramerSocket(self.decoder)
        self.rtu_framer = FramerRTU(self.decoder)
        self._loop = asyncio.new_event_loop()

        self.stats = {f"requests_fc{fc:02d}": 0 for fc in SUPPORTED_FUNCTION_CODES}
        self.stats["exceptions_total"] = 0
        self.stats["frames_dropped"] = 0

    def close(self):
        """Release the private event loop."""
        if not self._loop.is_closed():
            self._loop.close()

    # ------------------------------------------------------------------
    # Framing
    # ------------------------------------------------------------------

    def handle_tcp_frame(self, adu: bytes) -> Optional[bytes]:
        """
        Process one MBAP-framed request.

        Every unit ID is answered, as Modbus TCP devices are addressed by
        their IP endpoint.

        Returns:
            Reply ADU, or None if the frame is dropped
        """
        used, unit_id, transaction_id, pdu = self.tcp_framer.decode(adu)
        if not used or not pdu:
            logger.debug(f"Dropping unusable MBAP frame ({len(adu)} bytes)")
            self.stats["frames_dropped"] += 1
            return None

        response = self.execute(pdu)
        response.dev_id = unit_id
        response.transaction_id = transaction_id
        return self.tcp_framer.buildFrame(response)

    def handle_rtu_frame(self, adu: bytes) -> Optional[bytes]:
        """
        Process one RTU-framed request.

        Frames with a bad CRC or addressed to another slave are ignored.
        Broadcasts are executed without a reply.

        Returns:
            Reply ADU, or None when no reply must be sent
        """
        if len(adu) < FramerRTU.MIN_SIZE or not FramerRTU.check_CRC(
            adu[:-2], int.from_bytes(adu[-2:], "big")
        ):
            logger.debug(f"RTU CRC mismatch, dropping {len(adu)} byte frame")
            self.stats["frames_dropped"] += 1
            return None

        slave = adu[0]
        if slave != self.unit_id and slave != RTU_BROADCAST_ADDRESS:
            return None

        response = self.execute(adu[1:-2])
        if slave == RTU_BROADCAST_ADDRESS:
            return None

        response.dev_id = slave
        return self.rtu_framer.buildFrame(response)

    # ------------------------------------------------------------------
    # PDU execution
    # ------------------------------------------------------------------

    def execute(self, pdu: bytes) -> ModbusPDU:
        """
        Execute a request PDU against the register map.

        Args:
            pdu: Function code + request data

        Returns:
            pymodbus response (normal or exception)
        """
        function_code = pdu[0] if pdu else 0
        if function_code not in SUPPORTED_FUNCTION_CODES:
            return self._exception(function_code, ExcCodes.ILLEGAL_FUNCTION)

        self.stats[f"requests_fc{function_code:02d}"] += 1

        if function_code == 5 and pdu[3:5] not in COIL_VALUES:
            return self._exception(function_code, ExcCodes.ILLEGAL_VALUE)

        # pymodbus reports truncated data and out-of-range quantities as None
        request = self.decoder.decode(pdu)
        if request is None:
            return self._exception(function_code, ExcCodes.ILLEGAL_VALUE)

        try:
            response = self._loop.run_until_complete(
                request.datastore_update(self.datastore, request.dev_id)
            )
        except Exception as e:
            logger.error(f"Error processing FC{function_code:02d}: {e}", exc_info=True)
            return self._exception(function_code, ExcCodes.DEVICE_FAILURE)

        if response.isError():
            self.stats["exceptions_total"] += 1
        return response

    def execute_pdu(self, pdu: bytes) -> bytes:
        """Execute a request PDU and return the encoded response PDU."""
        response = self.execute(pdu)
        return response.function_code.to_bytes(1, "big") + response.encode()

    def _exception(self, function_code: int, code: ExcCodes) -> ExceptionResponse:
        self.stats["exceptions_total"] += 1
        return ExceptionResponse(function_code, code)

    def get_stats(self) -> Dict:
        """Get engine statistics."""
        return self.stats.copy()
