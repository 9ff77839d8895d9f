import logging
import os
import threading
from datetime import datetime

from PyQt5.QtCore import QObject, Qt, pyqtSignal
from PyQt5.QtGui import QColor, QFont, QPalette, QTextCursor
from PyQt5.QtWidgets import (
    QApplication, QCheckBox, QDoubleSpinBox, QFileDialog, QFormLayout, QHBoxLayout, QLabel, QLineEdit,
    QListWidget, QMainWindow, QMessageBox, QProgressBar, QPushButton, QSplitter, QTextEdit, QVBoxLayout,
    QWidget
)

import clip_processor
import config_helper
import defaults
from progress import ProgressEvent

logger = logging.getLogger(__name__)


class NoWheelDoubleSpinBox(QDoubleSpinBox):
    def wheelEvent(self, event):
        event.ignore()


class QTextEditLogHandler(QObject, logging.Handler):
    """Logging handler that appends records to a QTextEdit from any thread"""
    log_signal = pyqtSignal(str)

    def __init__(self, text_edit):
        QObject.__init__(self)
        logging.Handler.__init__(self)
        self.text_edit = text_edit
        self.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", "%H:%M:%S"))
        self.log_signal.connect(self.write_to_text_edit)

    def emit(self, record):
        self.log_signal.emit(self.format(record) + "\n")

    def write_to_text_edit(self, text):
        cursor = self.text_edit.textCursor()
        cursor.movePosition(QTextCursor.End)
        cursor.insertText(text)
        self.text_edit.setTextCursor(cursor)
        self.text_edit.ensureCursorVisible()


class ProgressBridge(QObject):
    """Carries ProgressEvents from the worker thread to the GUI thread"""
    progress_signal = pyqtSignal(object)

    def __call__(self, event):
        self.progress_signal.emit(event)


class AutoClipSenderGUI(QMainWindow):
    def __init__(self):
        super().__init__()
        self.config = config_helper.load_config()
        self.processor = None
        self.processor_thread = None
        self.stop_event = threading.Event()
        self.progress_bridge = ProgressBridge()
        self.progress_bridge.progress_signal.connect(self.on_progress)

        self.init_ui()
        self.load_values()

    def init_ui(self):
        self.setWindowTitle('Auto Clip Sender')
        self.setGeometry(100, 100, 900, 700)
        self.setup_dark_palette()
        self.statusBar().showMessage("Ready")

        main_widget = QWidget()
        main_layout = QVBoxLayout(main_widget)
        splitter = QSplitter(Qt.Vertical)

        # Settings section
        config_widget = QWidget()
        config_layout = QVBoxLayout(config_widget)
        form = QFormLayout()

        self.folder_list = QListWidget()
        self.folder_list.setMaximumHeight(100)
        add_folder_button = QPushButton("Add Folder")
        add_folder_button.clicked.connect(self.browse_folder)
        remove_folder_button = QPushButton("Remove")
        remove_folder_button.clicked.connect(self.remove_selected_folder)
        folder_buttons = QHBoxLayout()
        folder_buttons.addWidget(add_folder_button)
        folder_buttons.addWidget(remove_folder_button)
        folder_widget = QWidget()
        folder_layout = QVBoxLayout(folder_widget)
        folder_layout.setContentsMargins(0, 0, 0, 0)
        folder_layout.addWidget(self.folder_list)
        folder_layout.addLayout(folder_buttons)
        form.addRow("Monitored Folders:", folder_widget)

        self.recursive_checkbox = QCheckBox("Also watch subfolders")
        form.addRow("", self.recursive_checkbox)

        self.webhook_url = QLineEdit()
        self.webhook_url.setEchoMode(QLineEdit.Password)
        test_webhook_button = QPushButton("Test Webhook")
        test_webhook_button.clicked.connect(self.test_webhook)
        webhook_row = QHBoxLayout()
        webhook_row.addWidget(self.webhook_url)
        webhook_row.addWidget(test_webhook_button)
        form.addRow("Discord Webhook URL:", webhook_row)

        self.user_name = QLineEdit()
        form.addRow("Your Name:", self.user_name)

        self.max_size = NoWheelDoubleSpinBox()
        self.max_size.setRange(1, 500)
        self.max_size.setSuffix(" MB")
        form.addRow("Max File Size:", self.max_size)

        self.audio_checkbox = QCheckBox("Send audio only (MP3)")
        form.addRow("", self.audio_checkbox)
        config_layout.addLayout(form)

        # Control buttons
        control_layout = QHBoxLayout()
        self.start_button = QPushButton("Start Monitoring")
        self.start_button.clicked.connect(self.start_monitoring)
        self.start_button.setStyleSheet("background-color: #2ecc71; color: black; font-weight: bold;")
        self.stop_button = QPushButton("Stop Monitoring")
        self.stop_button.clicked.connect(self.stop_monitoring)
        self.stop_button.setStyleSheet("background-color: #e74c3c; color: black; font-weight: bold;")
        self.stop_button.setEnabled(False)
        self.save_button = QPushButton("Save Configuration")
        self.save_button.clicked.connect(self.save_configuration)
        self.save_button.setStyleSheet("background-color: #3498db; color: black; font-weight: bold;")
        control_layout.addWidget(self.start_button)
        control_layout.addWidget(self.stop_button)
        control_layout.addWidget(self.save_button)
        config_layout.addLayout(control_layout)

        self.progress_label = QLabel("Idle")
        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 100)
        config_layout.addWidget(self.progress_label)
        config_layout.addWidget(self.progress_bar)

        # Log output section
        terminal_widget = QWidget()
        terminal_layout = QVBoxLayout(terminal_widget)
        terminal_header = QLabel("Log Output")
        terminal_header.setFont(QFont("Arial", 12, QFont.Bold))
        terminal_layout.addWidget(terminal_header)

        self.terminal_output = QTextEdit()
        self.terminal_output.setReadOnly(True)
        self.terminal_output.setFont(QFont("Consolas", 10))
        self.terminal_output.setStyleSheet("background-color: #232629; color: #ffffff;")
        terminal_layout.addWidget(self.terminal_output)

        self.log_handler = QTextEditLogHandler(self.terminal_output)
        logging.getLogger().addHandler(self.log_handler)

        splitter.addWidget(config_widget)
        splitter.addWidget(terminal_widget)
        splitter.setSizes([350, 350])
        main_layout.addWidget(splitter)
        self.setCentralWidget(main_widget)

        logger.info("Auto Clip Sender GUI initialized at %s", datetime.now().strftime('%Y-%m-%d %H:%M:%S'))

    def setup_dark_palette(self):
        palette = QPalette()
        palette.setColor(QPalette.Window, QColor(53, 53, 53))
        palette.setColor(QPalette.WindowText, Qt.white)
        palette.setColor(QPalette.Base, QColor(25, 25, 25))
        palette.setColor(QPalette.AlternateBase, QColor(53, 53, 53))
        palette.setColor(QPalette.Text, Qt.white)
        palette.setColor(QPalette.Button, QColor(53, 53, 53))
        palette.setColor(QPalette.ButtonText, Qt.white)
        palette.setColor(QPalette.Highlight, QColor(42, 130, 218))
        palette.setColor(QPalette.HighlightedText, Qt.black)
        QApplication.setPalette(palette)
        QApplication.setStyle("Fusion")

    def load_values(self):
        self.folder_list.clear()
        self.folder_list.addItems(self.config.get('MONITOR_PATHS', []))
        self.recursive_checkbox.setChecked(bool(self.config.get('RECURSIVE_MONITORING')))
        self.webhook_url.setText(self.config.get('WEBHOOK_URL', ""))
        self.user_name.setText(self.config.get('USER_NAME', ""))
        self.max_size.setValue(float(self.config.get('MAX_FILE_SIZE_MB',
                                                     defaults.DEFAULT_CONFIG['MAX_FILE_SIZE_MB'])))
        self.audio_checkbox.setChecked(bool(self.config.get('SEND_AS_AUDIO')))

    def browse_folder(self):
        folder_path = QFileDialog.getExistingDirectory(self, "Select Folder")
        if folder_path and not self.folder_list.findItems(folder_path, Qt.MatchExactly):
            self.folder_list.addItem(folder_path)

    def remove_selected_folder(self):
        for item in self.folder_list.selectedItems():
            self.folder_list.takeItem(self.folder_list.row(item))

    def collect_config(self):
        config = dict(self.config)
        config.update({
            'MONITOR_PATHS': [self.folder_list.item(i).text() for i in range(self.folder_list.count())],
            'RECURSIVE_MONITORING': self.recursive_checkbox.isChecked(),
            'WEBHOOK_URL': self.webhook_url.text().strip(),
            'USER_NAME': self.user_name.text().strip(),
            'MAX_FILE_SIZE_MB': self.max_size.value(),
            'SEND_AS_AUDIO': self.audio_checkbox.isChecked(),
        })
        return config

    def save_configuration(self):
        config = self.collect_config()
        if config_helper.save_config(config):
            self.config = config
            logger.info("Configuration saved successfully")
            self.statusBar().showMessage("Configuration saved successfully", 3000)
            return True
        QMessageBox.warning(self, "Error", "Failed to save configuration.")
        return False

    def test_webhook(self):
        webhook_url = self.webhook_url.text().strip()
        if not webhook_url:
            QMessageBox.warning(self, "Warning", "Please enter a webhook URL first")
            return
        self.statusBar().showMessage("Testing webhook...", 3000)
        if clip_processor.test_webhook(webhook_url):
            QMessageBox.information(self, "Success", "Webhook test successful! Check your Discord channel.")
        else:
            QMessageBox.warning(self, "Warning", "Webhook test failed. See the log output for details.")

    def validate_settings(self):
        config = self.collect_config()
        if not config['WEBHOOK_URL']:
            QMessageBox.warning(self, "Invalid Setting", "Please enter a Discord webhook URL.")
            return False
        if not config['MONITOR_PATHS']:
            QMessageBox.warning(self, "Invalid Setting", "Add at least one folder to monitor.")
            return False
        missing = [p for p in config['MONITOR_PATHS'] if not os.path.isdir(p)]
        if missing:
            QMessageBox.warning(self, "Invalid Setting", f"Folder doesn't exist: {missing[0]}")
            return False
        return True

    def start_monitoring(self):
        if not self.validate_settings():
            return
        self.save_configuration()

        self.stop_event.clear()
        self.processor = clip_processor.ClipProcessor(self.config, self.stop_event,
                                                      progress_sink=self.progress_bridge)

        def run_clip_processor():
            try:
                self.processor.run()
            except Exception:
                logger.exception("Error in clip processor thread")

        self.processor_thread = threading.Thread(target=run_clip_processor, daemon=True)
        self.processor_thread.start()
        self.start_button.setEnabled(False)
        self.stop_button.setEnabled(True)

    def stop_monitoring(self):
        if self.processor is None:
            logger.info("No running clip processor to stop")
        else:
            self.processor.stop()
            if self.processor_thread is not None and self.processor_thread.is_alive():
                self.processor_thread.join(timeout=2.0)
            self.processor = None
            self.processor_thread = None
        self.start_button.setEnabled(True)
        self.stop_button.setEnabled(False)

    def on_progress(self, event: ProgressEvent):
        # Completion events may arrive twice (compression then upload), only the latest counts
        self.progress_bar.setValue(int(event.progress * 100))
        if event.error:
            self.progress_label.setText(f"Error: {event.error}")
            self.statusBar().showMessage(event.message, 5000)
        else:
            self.progress_label.setText(event.message)
            if event.is_complete:
                self.statusBar().showMessage(event.message, 3000)

    def closeEvent(self, event):
        self.stop_monitoring()
        logging.getLogger().removeHandler(self.log_handler)
        event.accept()
