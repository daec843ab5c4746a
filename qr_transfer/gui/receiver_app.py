import sys
from PySide6.QtWidgets import (QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
                               QPushButton, QLabel, QProgressBar, QTextEdit, QMessageBox,
                               QComboBox, QFileDialog)
from PySide6.QtCore import Qt, QTimer, Slot
from PySide6.QtGui import QImage, QPixmap

from qr_transfer.core.capture import CameraCapture, ScreenCapture, decode_qr_strings
from qr_transfer.core.config import ReceiverConfig
from qr_transfer.core.errors import TransferError
from qr_transfer.core.receiver import Receiver
from qr_transfer.core.sampler import CaptureSampler


class ReceiverApp(QMainWindow):
    def __init__(self, config: ReceiverConfig = None):
        super().__init__()
        self.setWindowTitle("QR Carousel - Receiver")
        self.resize(900, 700)
        self.config = config or ReceiverConfig()

        self.central_widget = QWidget()
        self.setCentralWidget(self.central_widget)
        self.layout = QVBoxLayout(self.central_widget)

        # Preview of the last captured image
        self.lbl_video = QLabel()
        self.lbl_video.setAlignment(Qt.AlignCenter)
        self.lbl_video.setMinimumSize(640, 400)
        self.lbl_video.setStyleSheet("background-color: #000;")
        self.layout.addWidget(self.lbl_video)

        # Controls
        self.controls_layout = QHBoxLayout()
        self.cmb_source = QComboBox()
        self.cmb_source.addItems(["Screen", "Camera"])
        self.btn_capture = QPushButton("Start Capture")
        self.btn_capture.clicked.connect(self.toggle_capture)
        self.btn_out = QPushButton("Output Folder")
        self.btn_out.clicked.connect(self.choose_out_dir)
        self.btn_save = QPushButton("Save Now")
        self.btn_save.clicked.connect(self.save_now)
        self.btn_save.setEnabled(False)
        self.lbl_status = QLabel("Status: Idle")

        self.controls_layout.addWidget(self.cmb_source)
        self.controls_layout.addWidget(self.btn_capture)
        self.controls_layout.addWidget(self.btn_out)
        self.controls_layout.addWidget(self.btn_save)
        self.controls_layout.addWidget(self.lbl_status)
        self.layout.addLayout(self.controls_layout)

        # Progress & Log
        self.progress = QProgressBar()
        self.layout.addWidget(self.progress)
        self.log_view = QTextEdit()
        self.log_view.setReadOnly(True)
        self.log_view.setMaximumHeight(150)
        self.layout.addWidget(self.log_view)

        # State
        self.capture = None
        self.sampler = None
        self.receiver = self._new_receiver()
        self.timer = QTimer()
        self.timer.timeout.connect(self.tick)
        self.is_capturing = False

    def _new_receiver(self) -> Receiver:
        return Receiver(self.config, on_error=lambda e: self.log(f"Error: {e}"),
                        on_complete=self.file_done)

    @Slot()
    def choose_out_dir(self):
        path = QFileDialog.getExistingDirectory(self, "Output Folder", self.config.out_dir)
        if path:
            self.config.out_dir = path
            self.receiver.reconstructor.out_dir = path
            self.log(f"Saving files to {path}")

    @Slot()
    def toggle_capture(self):
        if self.is_capturing:
            self.timer.stop()
            self.capture.close()
            self.capture = None
            self.btn_capture.setText("Start Capture")
            self.cmb_source.setEnabled(True)
            self.is_capturing = False
            self.log("Capture stopped.")
            return

        try:
            if self.cmb_source.currentText() == "Camera":
                self.capture = CameraCapture(0)
            else:
                self.capture = ScreenCapture()
        except RuntimeError as e:
            self.log(str(e))
            return

        self.sampler = CaptureSampler(self.grab, decode_qr_strings, self.receiver.handle_decoded,
                                      self.config.capture_interval, on_tick=self.receiver.poll,
                                      heartbeat_ticks=self.config.heartbeat_ticks)
        # Single-threaded timer: a slow tick delays the next one instead of overlapping it.
        self.timer.start(self.config.capture_interval_ms)
        self.btn_capture.setText("Stop Capture")
        self.cmb_source.setEnabled(False)
        self.is_capturing = True
        self.log("Listening for QR codes...")

    def grab(self):
        img = self.capture()
        if img is not None and self.cmb_source.currentText() == "Camera":
            data = img.convert("RGB").tobytes("raw", "RGB")
            qimg = QImage(data, img.width, img.height, img.width * 3, QImage.Format_RGB888)
            self.lbl_video.setPixmap(QPixmap.fromImage(qimg).scaled(self.lbl_video.size(), Qt.KeepAspectRatio))
        return img

    def tick(self):
        self.sampler.tick()
        self.update_progress()

    @Slot()
    def save_now(self):
        try:
            path = self.receiver.flush()
        except TransferError as e:
            QMessageBox.warning(self, "Incomplete", str(e))
            return
        if path is None:
            self.log("Nothing to save.")

    def file_done(self, path):
        self.log(f"Saved to {path}")
        QMessageBox.information(self, "Success", f"File saved to {path}")

    def update_progress(self):
        status = self.receiver.status()
        count, total = status['received'], status['total']
        state = status['state']
        if total:
            self.lbl_status.setText(f"{state}: {count} / {total}")
            self.progress.setMaximum(total)
            self.progress.setValue(count)
        else:
            self.lbl_status.setText(f"{state}: {count} chunks")
            self.progress.setMaximum(0 if count else 1)
        self.btn_save.setEnabled(count > 0)

    def log(self, msg):
        self.log_view.append(msg)

    def closeEvent(self, event):
        if self.is_capturing:
            self.toggle_capture()
        # Rebuild whatever arrived before the window goes away.
        try:
            self.receiver.flush()
        except TransferError as e:
            answer = QMessageBox.question(self, "Incomplete transfer",
                                          f"{e}\n\nClose anyway and discard the received chunks?")
            if answer != QMessageBox.Yes:
                event.ignore()
                return
        super().closeEvent(event)

if __name__ == "__main__":
    app = QApplication(sys.argv)
    window = ReceiverApp()
    window.show()
    sys.exit(app.exec())
