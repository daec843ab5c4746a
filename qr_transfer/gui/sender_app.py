import sys
import os
from PySide6.QtWidgets import (QApplication, QMainWindow, QWidget, QVBoxLayout,
                               QHBoxLayout, QPushButton, QLabel, QFileDialog,
                               QSlider, QProgressBar, QSizePolicy, QMessageBox)
from PySide6.QtCore import Qt, QTimer, Slot
from PySide6.QtGui import QImage, QPixmap, QKeyEvent

from qr_transfer.core.carousel import CarouselScheduler
from qr_transfer.core.config import DEFAULT_CHUNK_SIZE, DEFAULT_SLIDE_INTERVAL_MS
from qr_transfer.core.framing import frame_file
from qr_transfer.core.reconstruct import format_file_size
from qr_transfer.core.rendering import chunk_to_image

# The widget is refreshed faster than the carousel advances so frame changes show up promptly.
REFRESH_MS = 50


class SenderApp(QMainWindow):
    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__()
        self.setWindowTitle("QR Carousel - Sender")
        self.resize(800, 800)
        self.chunk_size = chunk_size

        self.central_widget = QWidget()
        self.setCentralWidget(self.central_widget)
        self.layout = QVBoxLayout(self.central_widget)

        # Top controls
        self.top_layout = QHBoxLayout()
        self.btn_select = QPushButton("Select File")
        self.btn_select.clicked.connect(self.select_file)
        self.lbl_file = QLabel("No file selected")

        self.btn_start = QPushButton("Start Transfer")
        self.btn_start.clicked.connect(self.start_transfer)
        self.btn_start.setEnabled(False)

        self.top_layout.addWidget(self.btn_select)
        self.top_layout.addWidget(self.btn_start)
        self.top_layout.addWidget(self.lbl_file)
        self.layout.addLayout(self.top_layout)

        # Metadata display
        self.meta_layout = QHBoxLayout()
        self.lbl_session = QLabel("Session: -")
        self.lbl_size = QLabel("Size: -")
        self.lbl_total_frames = QLabel("Total Frames: -")
        self.meta_layout.addWidget(self.lbl_session)
        self.meta_layout.addWidget(self.lbl_size)
        self.meta_layout.addWidget(self.lbl_total_frames)
        self.layout.addLayout(self.meta_layout)

        # QR display; white background keeps the quiet zone intact
        self.lbl_display = QLabel()
        self.lbl_display.setAlignment(Qt.AlignCenter)
        self.lbl_display.setStyleSheet("background-color: #fff; border: 2px solid #444;")
        self.lbl_display.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Expanding)
        self.layout.addWidget(self.lbl_display)

        # Playback controls
        self.controls_layout = QHBoxLayout()

        self.btn_prev = QPushButton("<")
        self.btn_prev.setFixedWidth(40)
        self.btn_prev.clicked.connect(self.prev_frame)

        self.btn_next = QPushButton(">")
        self.btn_next.setFixedWidth(40)
        self.btn_next.clicked.connect(self.next_frame)

        self.slider_interval = QSlider(Qt.Horizontal)
        self.slider_interval.setRange(100, 3000)
        self.slider_interval.setSingleStep(100)
        self.slider_interval.setValue(DEFAULT_SLIDE_INTERVAL_MS)
        self.lbl_interval = QLabel(f"{DEFAULT_SLIDE_INTERVAL_MS} ms")
        self.slider_interval.valueChanged.connect(self.change_interval)

        self.controls_layout.addWidget(self.btn_prev)
        self.controls_layout.addWidget(self.btn_next)
        self.controls_layout.addWidget(QLabel("Interval:"))
        self.controls_layout.addWidget(self.slider_interval)
        self.controls_layout.addWidget(self.lbl_interval)
        self.layout.addLayout(self.controls_layout)

        # Progress
        self.progress_layout = QHBoxLayout()
        self.lbl_counter = QLabel("Frame: 0/0")
        self.progress = QProgressBar()
        self.progress_layout.addWidget(self.lbl_counter)
        self.progress_layout.addWidget(self.progress)
        self.layout.addLayout(self.progress_layout)

        # State
        self.file_path = None
        self.frames = []  # one PIL image per chunk
        self.scheduler = None
        self.shown_idx = -1
        self.timer = QTimer()
        self.timer.timeout.connect(self.refresh)

    @Slot()
    def select_file(self):
        path, _ = QFileDialog.getOpenFileName(self, "Select File to Send")
        if path:
            self.file_path = path
            self.lbl_file.setText(os.path.basename(path))
            self.prepare_frames()

    def prepare_frames(self):
        self.timer.stop()
        self.frames = []
        self.lbl_display.setText("Generating frames...")
        QApplication.processEvents()

        try:
            framed = frame_file(self.file_path, self.chunk_size)
            self.frames = [chunk_to_image(chunk) for chunk in framed.chunks]
        except (OSError, ValueError) as e:
            QMessageBox.critical(self, "Error", str(e))
            self.lbl_display.setText("")
            self.btn_start.setEnabled(False)
            return

        self.lbl_session.setText(f"Session: {framed.session_id}")
        self.lbl_size.setText(f"Size: {format_file_size(framed.size)}")
        self.lbl_total_frames.setText(f"Total Frames: {len(self.frames)}")
        self.progress.setMaximum(len(self.frames))

        self.scheduler = CarouselScheduler(len(self.frames), self.slider_interval.value() / 1000.0,
                                           playing=False)
        self.shown_idx = -1
        self.btn_start.setText("Start Transfer")
        self.btn_start.setEnabled(True)
        self.timer.start(REFRESH_MS)

    @Slot()
    def start_transfer(self):
        if not self.scheduler:
            return
        playing = self.scheduler.toggle()
        self.btn_start.setText("Pause Transfer" if playing else "Resume Transfer")

    @Slot(int)
    def change_interval(self, value):
        self.lbl_interval.setText(f"{value} ms")
        if self.scheduler:
            self.scheduler.set_interval(value / 1000.0)

    def _manual(self, move):
        if not self.scheduler:
            return
        if self.scheduler.playing:
            self.start_transfer()  # Toggles to pause
        move()
        self.refresh()

    @Slot()
    def prev_frame(self):
        self._manual(self.scheduler.previous if self.scheduler else None)

    @Slot()
    def next_frame(self):
        self._manual(self.scheduler.next if self.scheduler else None)

    @Slot()
    def go_to_first_frame(self):
        self._manual(self.scheduler.first if self.scheduler else None)

    @Slot()
    def go_to_last_frame(self):
        self._manual(self.scheduler.last if self.scheduler else None)

    def keyPressEvent(self, event: QKeyEvent):
        if event.key() == Qt.Key_Left:
            self.prev_frame()
        elif event.key() == Qt.Key_Right:
            self.next_frame()
        elif event.key() == Qt.Key_Up:
            self.go_to_first_frame()
        elif event.key() == Qt.Key_Down:
            self.go_to_last_frame()
        elif event.key() == Qt.Key_Space:
            self.start_transfer()
        else:
            super().keyPressEvent(event)

    def refresh(self):
        idx = self.scheduler.current_index()
        if idx == self.shown_idx:
            return
        self.shown_idx = idx

        pil_img = self.frames[idx]
        data = pil_img.convert("RGBA").tobytes("raw", "RGBA")
        qimg = QImage(data, pil_img.width, pil_img.height, QImage.Format_RGBA8888)
        pixmap = QPixmap.fromImage(qimg)

        # Nearest-neighbour scaling keeps module edges sharp for the decoder
        scaled_pixmap = pixmap.scaled(self.lbl_display.size(), Qt.KeepAspectRatio, Qt.FastTransformation)
        self.lbl_display.setPixmap(scaled_pixmap)
        self.progress.setValue(idx + 1)
        self.lbl_counter.setText(f"Frame: {idx + 1}/{len(self.frames)}")

if __name__ == "__main__":
    app = QApplication(sys.argv)
    window = SenderApp()
    window.show()
    sys.exit(app.exec())
