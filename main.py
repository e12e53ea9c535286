"""
ioDD Rebuilder
Wipe a removable drive and rebuild it from a source folder
Features:
- Format to exFAT, NTFS or FAT32 with label verification and DiskPart fallback
- Sequential chunked copy, disk images first, with file/byte progress, speed and ETA
"""

# Version information
__version__ = "1.0.0"

import ttkbootstrap as ttk
from tkinter import messagebox
import sys
import os
import logging
import tempfile
from datetime import datetime

# Add project root to path
sys.path.insert(0, os.path.dirname(__file__))

from gui.main_window import MainWindow
from gui.log_panel import GUILogHandler

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

logger = logging.getLogger(__name__)
_session_log = None  # set by the first rebuild of this session


def setup_logging():
    """Console logging only; the log file is added once a rebuild starts"""
    logging.basicConfig(
        level=logging.DEBUG,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()]
    )


def enable_file_logging():
    """Attach the session log file on first use and return its path"""
    global _session_log
    if _session_log is not None:
        return _session_log

    _session_log = os.path.join(
        tempfile.gettempdir(),
        f"iodd_rebuilder_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    )
    file_handler = logging.FileHandler(_session_log, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(file_handler)

    logger.info("=" * 60)
    logger.info(f"ioDD Rebuilder v{__version__} - Operation Log")
    logger.info(f"Log file: {_session_log}")
    logger.info("=" * 60)
    return _session_log


def attach_gui_logging(log_panel):
    handler = GUILogHandler(log_panel)
    handler.setLevel(logging.DEBUG)  # the panel filters by level itself
    logging.getLogger().addHandler(handler)
    return handler


def main():
    """Entry point for the application"""
    _require_admin()
    setup_logging()
    logger.info(f"Starting ioDD Rebuilder v{__version__}")

    root = ttk.Window(
        title=f"ioDD Rebuilder v{__version__}",
        themename="darkly",
        resizable=(True, True)
    )

    # Single column layout, narrower than wide
    width = min(int(root.winfo_screenwidth() * 0.5), 960)
    height = max(720, min(int(root.winfo_screenheight() * 0.8), 1000))
    root.geometry(f"{width}x{height}")
    root.place_window_center()

    app = MainWindow(root, enable_file_logging=enable_file_logging)
    attach_gui_logging(app.log_panel)

    root.mainloop()


def _require_admin():
    """Formatting needs an elevated process on Windows"""
    if sys.platform != 'win32':
        return
    import ctypes
    if not ctypes.windll.shell32.IsUserAnAdmin():
        messagebox.showerror(
            "Administrator Required",
            "ioDD Rebuilder needs administrator privileges to format drives.\n\n"
            "Please run as Administrator."
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
