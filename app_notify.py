# app_notify.py
# Version: 1.0.1
# Desktop notification for Chkdsk Sentry: a modal Qt message box telling the user a restart is
# needed. Failures are reported to the caller and never end the run.

import sys
import logging

logger = logging.getLogger(__name__)

APP_TITLE = "Chkdsk Sentry"


def show_restart_notification(text: str) -> bool:
    """Show the restart-required dialog. Returns False (after logging a warning) if it could not be shown."""
    try:
        from PySide6.QtWidgets import QApplication, QMessageBox

        app = QApplication.instance() or QApplication(sys.argv[:1])
        app.setApplicationName(APP_TITLE)

        box = QMessageBox()
        box.setIcon(QMessageBox.Warning)
        box.setWindowTitle(f"{APP_TITLE} - restart required")
        box.setText(text)
        box.setStandardButtons(QMessageBox.Ok)
        box.exec()
        return True

    except Exception as e:
        logger.warning(f"Could not show desktop notification: {e}")
        return False
