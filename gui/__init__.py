"""
GUI package for ioDD Rebuilder
"""

from gui.main_window import MainWindow
from gui.progress_panel import ProgressPanel
from gui.log_panel import LogPanel, GUILogHandler

__all__ = [
    'MainWindow',
    'ProgressPanel',
    'LogPanel',
    'GUILogHandler'
]
