"""
Unit tests for the capture and QR decode capabilities.
"""

import os
import tempfile
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from PIL import Image

from qr_transfer.core.framing import encode_frame, frame_bytes, parse_frame
from qr_transfer.core.rendering import chunk_to_image

from fakes import sample_bytes

try:
    from qr_transfer.core import capture
except ImportError:  # pyzbar needs the zbar shared library
    capture = None


@unittest.skipIf(capture is None, "zbar library not available")
class TestDecode(unittest.TestCase):

    def setUp(self):
        self.framed = frame_bytes(sample_bytes(600), 300, session_id='dec0de')

    def test_rendered_chunk_decodes_to_frame(self):
        chunk = self.framed.chunks[1]
        found = capture.decode_qr_strings(chunk_to_image(chunk, scale=4))
        self.assertEqual(found, {encode_frame(chunk)})
        self.assertEqual(parse_frame(found.pop()), chunk)

    def test_two_codes_in_one_capture(self):
        first, second = (chunk_to_image(c, scale=4).convert('RGB') for c in self.framed.chunks[:2])
        screen = Image.new('RGB', (first.width + second.width + 40, max(first.height, second.height)), 'white')
        screen.paste(first, (0, 0))
        screen.paste(second, (first.width + 40, 0))
        found = capture.decode_qr_strings(screen)
        self.assertEqual({parse_frame(s).seq for s in found}, {0, 1})

    def test_blank_image(self):
        self.assertEqual(capture.decode_qr_strings(Image.new('RGB', (200, 200), 'white')), set())

    def test_non_utf8_content_skipped(self):
        symbols = [SimpleNamespace(data=b'\xff\xfe\x00'), SimpleNamespace(data=b'QRT1|ok')]
        with patch.object(capture, 'decode_qr', return_value=symbols):
            found = capture.decode_qr_strings(Image.new('RGB', (10, 10)))
        self.assertEqual(found, {'QRT1|ok'})

    def test_grayscale_weights(self):
        img = Image.new('RGB', (2, 1))
        img.putpixel((0, 0), (255, 0, 0))
        img.putpixel((1, 0), (255, 255, 255))
        gray = capture.to_grayscale(img)
        self.assertEqual(gray.shape, (1, 2))
        self.assertEqual(gray[0, 0], 76)
        self.assertEqual(gray[0, 1], 255)


@unittest.skipIf(capture is None, "zbar library not available")
class TestFolderCapture(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        for name, shade in (('b.png', 20), ('a.jpg', 120), ('c.bmp', 220)):
            Image.new('L', (8, 8), shade).save(os.path.join(self.tmp.name, name))
        with open(os.path.join(self.tmp.name, 'notes.txt'), 'w') as f:
            f.write('not a frame')

    def test_replays_images_in_name_order(self):
        source = capture.FolderCapture(self.tmp.name)
        self.assertEqual([os.path.basename(p) for p in source.paths], ['a.jpg', 'b.png', 'c.bmp'])
        self.assertFalse(source.exhausted)
        sizes = []
        while not source.exhausted:
            img = source()
            sizes.append(img.size)
        self.assertEqual(sizes, [(8, 8)] * 3)
        self.assertEqual(source.position, 3)
        self.assertIsNone(source())
        source.close()

    def test_returned_image_outlives_file(self):
        source = capture.FolderCapture(self.tmp.name)
        img = source()
        os.remove(source.paths[0])
        self.assertAlmostEqual(img.convert('L').getpixel((0, 0)), 120, delta=2)

    def test_empty_directory_is_exhausted(self):
        with tempfile.TemporaryDirectory() as empty:
            source = capture.FolderCapture(empty)
            self.assertTrue(source.exhausted)
            self.assertIsNone(source())

    def test_missing_directory(self):
        with self.assertRaises(FileNotFoundError):
            capture.FolderCapture(os.path.join(self.tmp.name, 'nope'))


if __name__ == '__main__':
    unittest.main()
