import sys
import argparse
from PySide6.QtWidgets import QApplication
from qr_transfer.core.logger_config import setup_logger
from qr_transfer.gui.sender_app import SenderApp
from qr_transfer.gui.receiver_app import ReceiverApp

def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('mode', choices=['sender', 'receiver'], help='Mode to run')
    parser.add_argument('--log-file', help='Also write logs to this file')
    args = parser.parse_args()

    setup_logger('qr_transfer', args.log_file)
    app = QApplication(sys.argv)

    if args.mode == 'sender':
        window = SenderApp()
    else:
        window = ReceiverApp()

    window.show()
    sys.exit(app.exec())

if __name__ == '__main__':
    main()
