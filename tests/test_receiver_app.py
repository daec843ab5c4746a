"""
Tests for the receiver window's shutdown behaviour (offscreen Qt).
"""

import os
import tempfile
import unittest
from unittest.mock import patch

from qr_transfer.core.config import ReceiverConfig
from qr_transfer.core.framing import encode_frame, frame_bytes

from fakes import sample_bytes

os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')

try:
    from PySide6.QtGui import QCloseEvent
    from PySide6.QtWidgets import QApplication, QMessageBox
    from qr_transfer.gui.receiver_app import ReceiverApp
except ImportError:  # no Qt platform libraries or no zbar
    ReceiverApp = None


@unittest.skipIf(ReceiverApp is None, "PySide6 or zbar not available")
class TestReceiverWindowClose(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.app = QApplication.instance() or QApplication([])

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.window = ReceiverApp(ReceiverConfig(out_dir=self.tmp.name))
        self.addCleanup(self.window.deleteLater)
        self.framed = frame_bytes(sample_bytes(300), 100, session_id='9a11')

    def feed(self, chunks):
        self.window.receiver.handle_decoded([encode_frame(c) for c in chunks])

    def close_window(self):
        event = QCloseEvent()
        self.window.closeEvent(event)
        return event.isAccepted()

    def test_close_writes_received_file(self):
        self.feed(self.framed.chunks)
        with patch.object(QMessageBox, 'information') as info:
            self.assertTrue(self.close_window())
        info.assert_called_once()
        written = os.listdir(self.tmp.name)
        self.assertEqual(len(written), 1)
        with open(os.path.join(self.tmp.name, written[0]), 'rb') as f:
            self.assertEqual(f.read(), sample_bytes(300))

    def test_close_with_gap_asks_first(self):
        self.feed([self.framed.chunks[0], self.framed.chunks[2]])
        with patch.object(QMessageBox, 'question', return_value=QMessageBox.No) as question:
            self.assertFalse(self.close_window())
        question.assert_called_once()
        self.assertEqual(self.window.receiver.status()['received'], 2)

        with patch.object(QMessageBox, 'question', return_value=QMessageBox.Yes):
            self.assertTrue(self.close_window())
        self.assertEqual(os.listdir(self.tmp.name), [])

    def test_close_with_nothing_received(self):
        with patch.object(QMessageBox, 'question') as question:
            self.assertTrue(self.close_window())
        question.assert_not_called()
        self.assertEqual(os.listdir(self.tmp.name), [])


if __name__ == '__main__':
    unittest.main()
