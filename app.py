import logging
import os
import sys
import traceback

from PyQt5.QtGui import QIcon
from PyQt5.QtWidgets import QApplication, QMessageBox

import config_helper
import ffmpeg_helper
import log_helper

logger = logging.getLogger(__name__)

APP_ID = "autoClipSender.1.0"


# Set up exception hook to show errors in message boxes
def excepthook(exc_type, exc_value, exc_tb):
    tb = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
    logger.critical("Unhandled exception:\n%s", tb)
    if QApplication.instance():
        QMessageBox.critical(None, "Unhandled Exception",
                             f"An unhandled exception occurred:\n\n{tb}\n\nPlease report this error.")


def find_icon(app_dir):
    icon_paths = [
        os.path.join(app_dir, '_internal', '128x128.ico'),  # PyInstaller build
        os.path.join(app_dir, '128x128.ico'),              # Root directory
        os.path.join(app_dir, 'icons', '128x128.ico'),     # Icons folder
    ]
    for icon_path in icon_paths:
        if os.path.exists(icon_path):
            return QIcon(icon_path)
    return None


def main():
    config_helper.load_environment()
    config_helper.ensure_config_files()
    config = config_helper.load_config()
    log_helper.setup_logging(config.get('LOG_LEVEL', "INFO"))
    sys.excepthook = excepthook

    app_dir = config_helper.get_application_path()
    logger.info("Application directory: %s", app_dir)
    logger.info("User configuration directory: %s", config_helper.get_user_config_dir())

    # Prefer an ffmpeg folder shipped next to the application
    ffmpeg_dir = os.path.join(app_dir, 'ffmpeg')
    if os.path.isdir(ffmpeg_dir) and ffmpeg_dir not in os.environ.get('PATH', ''):
        os.environ['PATH'] = ffmpeg_dir + os.pathsep + os.environ.get('PATH', '')
        logger.info("Added ffmpeg directory to PATH: %s", ffmpeg_dir)

    ffmpeg_helper.hide_console_windows()
    config_helper.reset_session_stats()

    from gui import AutoClipSenderGUI
    app = QApplication(sys.argv)
    app.setApplicationName("Auto Clip Sender")
    app.setApplicationDisplayName("Auto Clip Sender")
    app.setOrganizationName("Auto Clip Sender")
    app.setStyle('Fusion')

    app_icon = find_icon(app_dir)
    if app_icon and not app_icon.isNull():
        app.setWindowIcon(app_icon)
        if os.name == 'nt':
            # Helps Windows group the taskbar icon
            import ctypes
            try:
                ctypes.windll.shell32.SetCurrentProcessExplicitAppUserModelID(APP_ID)
            except OSError as e:
                logger.warning("Error setting application ID: %s", e)

    window = AutoClipSenderGUI()
    if app_icon and not app_icon.isNull():
        window.setWindowIcon(app_icon)
    window.show()
    return app.exec_()


if __name__ == '__main__':
    try:
        sys.exit(main())
    except Exception as e:
        trace = traceback.format_exc()
        logger.critical("Error starting application: %s\n%s", e, trace)
        if QApplication.instance():
            QMessageBox.critical(None, "Startup Error",
                                 f"Error starting application:\n\n{e}\n\n{trace}")
        sys.exit(1)
