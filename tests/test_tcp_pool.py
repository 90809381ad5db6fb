"""
Test Suite for the TCP Connection Pool
======================================

Tests validate:
    - Frame splitting and MBAP/JSON classification
    - Slot allocation, capacity limit and rejection of extra clients
    - Request/reply servicing and disconnect handling

Uses real loopback sockets.
"""

import select
import socket
import unittest

from json_modbus.transport.tcp_pool import ConnectionPool, FrameKind, next_frame

MBAP_READ = bytes.fromhex("000100000006010300000001")


def wait_readable(sock, timeout=2.0):
    readable, _, _ = select.select([sock], [], [], timeout)
    return bool(readable)


class TestNextFrame(unittest.TestCase):
    """Test splitting a client buffer into frames"""

    def test_json_lines(self):
        buffer = bytearray(b'{"cmd":"start"}\n{"cmd":"status"}\n')
        self.assertEqual(next_frame(buffer), (FrameKind.JSON, b'{"cmd":"start"}'))
        self.assertEqual(next_frame(buffer), (FrameKind.JSON, b'{"cmd":"status"}'))
        self.assertIsNone(next_frame(buffer))

    def test_blank_lines_skipped(self):
        buffer = bytearray(b'\n\r\n{"cmd":"status"}\n')
        self.assertEqual(next_frame(buffer), (FrameKind.JSON, b'{"cmd":"status"}'))

    def test_unterminated_text_is_one_datagram(self):
        buffer = bytearray(b'{"cmd":"status"}')
        self.assertEqual(next_frame(buffer), (FrameKind.JSON, b'{"cmd":"status"}'))
        self.assertEqual(buffer, bytearray())

    def test_partial_mbap_waits(self):
        buffer = bytearray(MBAP_READ[:8])
        self.assertIsNone(next_frame(buffer))
        self.assertEqual(len(buffer), 8)

        buffer.extend(MBAP_READ[8:])
        self.assertEqual(next_frame(buffer), (FrameKind.MODBUS, MBAP_READ))

    def test_mbap_split_after_brace_transaction_id(self):
        # Transaction ID 0x7B01 starts with the byte for "{"
        request = bytes.fromhex("7B01000000060103000A0002")
        buffer = bytearray(request[:3])
        self.assertIsNone(next_frame(buffer))
        self.assertEqual(buffer, bytearray(request[:3]))

        buffer.extend(request[3:])
        self.assertEqual(next_frame(buffer), (FrameKind.MODBUS, request))
        self.assertEqual(buffer, bytearray())

    def test_short_text_waits_for_more(self):
        buffer = bytearray(b"{}")
        self.assertIsNone(next_frame(buffer))
        buffer.extend(b"\n")
        self.assertEqual(next_frame(buffer), (FrameKind.JSON, b"{}"))

    def test_back_to_back_mbap(self):
        buffer = bytearray(MBAP_READ + MBAP_READ)
        self.assertEqual(next_frame(buffer)[0], FrameKind.MODBUS)
        self.assertEqual(next_frame(buffer)[0], FrameKind.MODBUS)
        self.assertIsNone(next_frame(buffer))

    def test_bad_mbap_length_discarded(self):
        buffer = bytearray(bytes.fromhex("0001000000000103"))
        self.assertIsNone(next_frame(buffer))
        self.assertEqual(buffer, bytearray())


class TestConnectionPool(unittest.TestCase):
    """Test the pool against loopback clients"""

    def setUp(self):
        self.pool = ConnectionPool(capacity=10)
        self.pool.open("127.0.0.1", 0)
        self.port = self.pool.address[1]
        self.clients = []

    def tearDown(self):
        for client in self.clients:
            client.close()
        self.pool.shutdown()

    def connect(self):
        client = socket.create_connection(("127.0.0.1", self.port), timeout=2.0)
        self.clients.append(client)
        self.assertTrue(wait_readable(self.pool.listen_sock))
        return client

    def test_accept_uses_first_free_slot(self):
        self.connect()
        self.assertEqual(self.pool.accept(), 0)
        self.connect()
        self.assertEqual(self.pool.accept(), 1)

        self.pool.close_slot(0)
        self.connect()
        self.assertEqual(self.pool.accept(), 0)
        self.assertEqual(len(self.pool), 2)

    def test_accept_without_pending_connection(self):
        self.assertIsNone(self.pool.accept())

    def test_eleventh_client_rejected(self):
        for expected_slot in range(10):
            self.connect()
            self.assertEqual(self.pool.accept(), expected_slot)
        self.assertTrue(self.pool.is_full)

        extra = self.connect()
        self.assertIsNone(self.pool.accept())

        self.assertEqual(len(self.pool), 10)
        self.assertEqual(self.pool.stats["connections_rejected"], 1)
        # The rejected connection was consumed and closed by the server
        self.assertEqual(extra.recv(16), b"")

    def test_service_replies_per_frame(self):
        client = self.connect()
        slot = self.pool.accept()
        received = []

        def handler(conn, kind, payload):
            received.append((conn.slot, kind, payload))
            return b"ack\n"

        client.sendall(b'{"cmd":"status"}\n' + MBAP_READ)
        conn = self.pool.slots[slot]
        self.assertTrue(wait_readable(conn.sock))
        self.assertTrue(self.pool.service(slot, handler))

        self.assertEqual(
            received,
            [
                (slot, FrameKind.JSON, b'{"cmd":"status"}'),
                (slot, FrameKind.MODBUS, MBAP_READ),
            ],
        )
        data = b""
        while len(data) < 8:
            data += client.recv(16)
        self.assertEqual(data, b"ack\nack\n")

    def test_no_reply_when_handler_returns_none(self):
        client = self.connect()
        slot = self.pool.accept()

        client.sendall(MBAP_READ)
        self.assertTrue(wait_readable(self.pool.slots[slot].sock))
        self.assertTrue(self.pool.service(slot, lambda conn, kind, payload: None))
        self.assertEqual(self.pool.stats["bytes_sent"], 0)

    def test_no_data_is_not_an_error(self):
        self.connect()
        slot = self.pool.accept()
        self.assertTrue(self.pool.service(slot, lambda conn, kind, payload: None))
        self.assertEqual(len(self.pool), 1)

    def test_peer_disconnect_frees_slot(self):
        client = self.connect()
        slot = self.pool.accept()

        client.close()
        self.clients.remove(client)
        self.assertTrue(wait_readable(self.pool.slots[slot].sock))

        self.assertFalse(self.pool.service(slot, lambda conn, kind, payload: None))
        self.assertIsNone(self.pool.slots[slot])
        self.assertEqual(len(self.pool), 0)

    def test_shutdown_closes_everything(self):
        client = self.connect()
        self.pool.accept()

        self.pool.shutdown()

        self.assertFalse(self.pool.is_listening)
        self.assertEqual(self.pool.occupied(), [])
        self.assertEqual(client.recv(16), b"")


if __name__ == "__main__":
    unittest.main()
