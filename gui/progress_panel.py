"""
Progress Panel Widget - Show format and copy progress
"""

import ttkbootstrap as ttk
from ttkbootstrap.constants import *

from core.progress import format_bytes, format_eta


class ProgressPanel(ttk.Frame):
    """Widget to display rebuild progress"""

    def __init__(self, parent):
        super().__init__(parent, bootstyle=DARK)

        self.current_stage = ""
        self.current_percent = 0

        self._create_widgets()
        self._layout_widgets()

    def _create_widgets(self):
        """Create widgets"""

        self.stage_label = ttk.Label(
            self,
            text="Ready to rebuild",
            font=("Segoe UI", 10, "bold"),
            foreground="white",
            bootstyle="inverse-dark"
        )

        # Bar follows the file-based percent so the first file doesn't jump to 20%
        self.progressbar = ttk.Progressbar(
            self,
            mode=DETERMINATE,
            bootstyle=SUCCESS,
            length=400
        )

        self.percent_label = ttk.Label(
            self,
            text="0%",
            font=("Segoe UI", 10),
            foreground="white",
            bootstyle="inverse-dark"
        )

        self.current_label = ttk.Label(
            self,
            text="",
            font=("Segoe UI", 9),
            foreground="white",
            bootstyle="inverse-dark"
        )

        self.details_frame = ttk.Frame(self, bootstyle=DARK)
        self.value_labels = {}
        for row, name in enumerate(["Files", "Bytes", "File", "Current file", "Speed", "ETA"]):
            ttk.Label(
                self.details_frame,
                text=f"{name}:",
                font=("Segoe UI", 9, "bold"),
                bootstyle="inverse-dark"
            ).grid(row=row, column=0, sticky=W, padx=(20, 10), pady=1)

            value = ttk.Label(
                self.details_frame,
                text="-",
                font=("Segoe UI", 9),
                bootstyle="inverse-dark"
            )
            value.grid(row=row, column=1, sticky=W, pady=1)
            self.value_labels[name] = value

    def _layout_widgets(self):
        """Layout widgets"""

        progress_container = ttk.Frame(self, bootstyle=DARK)
        progress_container.pack(fill=X, pady=5)

        self.stage_label.pack(pady=(10, 5))

        self.progressbar.pack(side=LEFT, expand=YES, fill=X, padx=(20, 10))
        self.percent_label.pack(side=LEFT, padx=(0, 20))

        self.current_label.pack(pady=(5, 5))
        self.details_frame.pack(fill=X, pady=(0, 10))

    def _set(self, name, text):
        self.value_labels[name].config(text=text)

    def start(self):
        """Start progress"""
        self.progressbar.config(value=0, bootstyle=INFO)
        self.stage_label.config(text="Starting rebuild...", foreground="white")
        self.percent_label.config(text="0%")
        self.current_label.config(text="")
        for name in self.value_labels:
            self._set(name, "-")

    def update_snapshot(self, snapshot):
        """Render a ProgressSnapshot"""
        self.current_stage = snapshot.stage
        self.stage_label.config(text=snapshot.stage)

        if snapshot.total_files == 0:
            # Format/scan stages have no counters yet
            self.progressbar.config(mode=INDETERMINATE)
            self.progressbar.start(15)
            self.current_label.config(text=f"{snapshot.stage}...")
            return

        self.progressbar.stop()
        self.current_percent = snapshot.files_percent
        self.progressbar.config(mode=DETERMINATE, value=snapshot.files_percent, bootstyle=INFO)
        self.percent_label.config(text=f"{snapshot.files_percent}%")
        self.current_label.config(text=snapshot.current_file)

        current_index = min(snapshot.files_done + 1, snapshot.total_files)
        self._set("Files", f"{snapshot.files_percent}% ({current_index} / {snapshot.total_files})")
        self._set("Bytes", f"{snapshot.bytes_percent}% ({format_bytes(snapshot.bytes_done)} / "
                           f"{format_bytes(snapshot.total_bytes)})")
        self._set("File", f"{current_index} / {snapshot.total_files}")
        self._set("Current file", f"{snapshot.current_file_percent}% "
                                  f"({format_bytes(snapshot.current_file_bytes_done)} / "
                                  f"{format_bytes(snapshot.current_file_bytes_total)})")
        speed = snapshot.speed_bytes_per_second
        self._set("Speed", f"{format_bytes(speed)}/s" if speed > 0 else "-")
        self._set("ETA", format_eta(snapshot.eta))

    def complete(self, snapshot=None):
        """Mark as complete"""
        self.progressbar.stop()
        if snapshot is not None:
            self.update_snapshot(snapshot)
        self.progressbar.config(mode=DETERMINATE, value=100, bootstyle=SUCCESS)
        self.stage_label.config(text="✓ Rebuild Complete", foreground="green")
        self.current_label.config(text="All files copied successfully")
        self.percent_label.config(text="100%")

    def cancelled(self):
        """Mark as cancelled"""
        self.progressbar.stop()
        self.progressbar.config(mode=DETERMINATE, bootstyle=WARNING)
        self.stage_label.config(text="Cancelled", foreground="orange")
        self.current_label.config(text="The drive may contain a partial copy")

    def nothing_to_do(self):
        self.progressbar.stop()
        self.progressbar.config(mode=DETERMINATE, value=0, bootstyle=SECONDARY)
        self.stage_label.config(text="No files to copy", foreground="white")
        self.current_label.config(text="The drive was formatted, the source folder is empty")

    def error(self):
        """Mark as error"""
        self.progressbar.stop()
        self.progressbar.config(mode=DETERMINATE, bootstyle=DANGER)
        self.stage_label.config(text="✗ Rebuild Failed", foreground="red")
        self.current_label.config(text="An error occurred during the rebuild")

    def reset(self):
        """Reset progress panel to initial state"""
        self.current_stage = ""
        self.current_percent = 0
        self.progressbar.stop()
        self.progressbar.config(mode=DETERMINATE, value=0, bootstyle=SUCCESS)
        self.percent_label.config(text="0%")
        self.current_label.config(text="")
        self.stage_label.config(text="Ready to rebuild", foreground="white")
        for name in self.value_labels:
            self._set(name, "-")
