"""
Unit tests for reassembly, gap detection and persisting the received file.
"""

import os
import random
import tempfile
import unittest
from unittest.mock import patch

from qr_transfer.core.assembly import AssemblyStore, StoreSnapshot
from qr_transfer.core.errors import PersistFailure, ReconstructionError, ReconstructionGap
from qr_transfer.core.framing import frame_bytes
from qr_transfer.core.reconstruct import Reconstructor, format_file_size

from fakes import FakeClock, sample_bytes


def fill(store, chunks):
    for chunk in chunks:
        store.observe(chunk)
    return store


class TestAssemble(unittest.TestCase):

    def setUp(self):
        self.reconstructor = Reconstructor()

    def test_round_trip_various_sizes(self):
        rng = random.Random(3)
        for size in (0, 1, 2, 3, 4, 100, 1499, 1500, 1501, 9000):
            for chunk_size in (3, 4, 10, 1500, 2000):
                with self.subTest(size=size, chunk_size=chunk_size):
                    data = bytes(rng.randrange(256) for _ in range(size))
                    framed = frame_bytes(data, chunk_size, session_id='ab')
                    store = fill(AssemblyStore('ab'), framed.chunks)
                    self.assertEqual(self.reconstructor.assemble(store.snapshot()), data)

    def test_reverse_order_5000_bytes(self):
        data = sample_bytes(5000)
        framed = frame_bytes(data, 2000, session_id='ab')
        self.assertEqual([c.seq for c in framed.chunks], list(range(framed.total)))
        store = fill(AssemblyStore('ab'), reversed(framed.chunks))
        self.assertEqual(self.reconstructor.assemble(store.snapshot()), data)

    def test_gap_below_max_seq(self):
        framed = frame_bytes(sample_bytes(500), 30, session_id='ab')
        chunks = [c for c in framed.chunks if c.seq != 3]
        store = fill(AssemblyStore('ab'), chunks)
        with self.assertRaises(ReconstructionGap) as ctx:
            self.reconstructor.assemble(store.snapshot())
        self.assertEqual(ctx.exception.missing, [3])

    def test_missing_tail_detected_from_total_hint(self):
        framed = frame_bytes(sample_bytes(500), 30, session_id='ab')
        store = fill(AssemblyStore('ab'), framed.chunks[:-2])
        with self.assertRaises(ReconstructionGap) as ctx:
            self.reconstructor.assemble(store.snapshot())
        self.assertEqual(ctx.exception.missing, [framed.total - 2, framed.total - 1])

    def test_missing_head_without_total_hint(self):
        snapshot = StoreSnapshot('ab', 1, 2, None, 5.0, ((2, 'QUJD'),))
        with self.assertRaises(ReconstructionGap) as ctx:
            self.reconstructor.assemble(snapshot)
        self.assertEqual(ctx.exception.missing, [0, 1])

    def test_empty_snapshot_is_gap(self):
        with self.assertRaises(ReconstructionGap):
            self.reconstructor.assemble(AssemblyStore('ab').snapshot())

    def test_undecodable_payload(self):
        snapshot = StoreSnapshot('ab', 2, 1, None, 5.0, ((0, 'QQ=='), (1, 'QUJD')))
        with self.assertRaises(ReconstructionError):
            self.reconstructor.assemble(snapshot)

    def test_format_file_size(self):
        self.assertEqual(format_file_size(10), "10 bytes")
        self.assertEqual(format_file_size(2048), "2.00 KB")
        self.assertEqual(format_file_size(3 * 1024 * 1024), "3.00 MB")


class TestPersist(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.reconstructor = Reconstructor(os.path.join(self.tmp.name, 'out'))

    def test_name_embeds_timestamp(self):
        path = self.reconstructor.persist(b'payload', when=1700000000.7)
        self.assertEqual(os.path.basename(path), 'received_file_1700000000')
        with open(path, 'rb') as f:
            self.assertEqual(f.read(), b'payload')

    def test_existing_name_gets_suffix(self):
        first = self.reconstructor.persist(b'one', when=1700000000)
        second = self.reconstructor.persist(b'two', when=1700000000)
        self.assertNotEqual(first, second)
        self.assertTrue(second.endswith('received_file_1700000000_1'))

    def test_write_error_is_persist_failure(self):
        with patch('builtins.open', side_effect=PermissionError('read-only')):
            with self.assertRaises(PersistFailure) as ctx:
                self.reconstructor.persist(b'data', when=1)
        self.assertIsInstance(ctx.exception.cause, PermissionError)

    def test_reconstruct_end_to_end(self):
        data = sample_bytes(5000)
        framed = frame_bytes(data, 2000, session_id='ab')
        store = fill(AssemblyStore('ab', FakeClock()), framed.chunks)
        path = self.reconstructor.reconstruct(store.snapshot(), when=42)
        with open(path, 'rb') as f:
            self.assertEqual(f.read(), data)


if __name__ == '__main__':
    unittest.main()
