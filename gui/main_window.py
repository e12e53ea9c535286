"""
Main GUI Window for ioDD Rebuilder
"""

import ttkbootstrap as ttk
from ttkbootstrap.constants import *
from tkinter import filedialog
import os
import queue
import logging

from gui.progress_panel import ProgressPanel
from gui.log_panel import LogPanel
from core.format_backend import WindowsFormatBackend
from core.format_orchestrator import FormatOrchestrator
from core.models import FileSystem, ProgressSnapshot, RunResult, RunStatus
from core.run_controller import RunController
from core.settings import (DEFAULT_FILESYSTEM, DEFAULT_LABEL, FAT32_ADVISORY_LIMIT,
                           RebuildOptions, load_preferences, save_preferences)
from core.volume_manager import VolumeManager

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 250


class MainWindow:
    """Main application window"""

    def __init__(self, root, enable_file_logging=None):
        self.root = root
        self.enable_file_logging = enable_file_logging
        self.log_file = None

        try:
            self.volume_manager = VolumeManager()
        except RuntimeError as e:
            logger.error(f"Volume access unavailable: {e}")
            self.volume_manager = None

        # State
        self.volumes = []
        self.controller = None
        self.events = None

        # Build UI
        self._create_menu()
        self._create_widgets()
        self._layout_widgets()

        # Bind keyboard shortcut for log toggle (Ctrl+L)
        self.root.bind('<Control-l>', lambda e: self._toggle_log_panel())
        self.root.protocol("WM_DELETE_WINDOW", self._on_close)

        self._load_preferences()
        self._refresh_volumes()

    def _create_menu(self):
        """Create menu bar"""
        menubar = ttk.Menu(self.root)
        self.root.config(menu=menubar)

        help_menu = ttk.Menu(menubar, tearoff=0)
        menubar.add_cascade(label="Help", menu=help_menu)
        help_menu.add_command(label="Usage Guide", command=self._show_usage_guide)
        help_menu.add_separator()
        help_menu.add_command(label="View Log File", command=lambda: self.log_panel.open_log_file())
        help_menu.add_separator()
        help_menu.add_command(label="About", command=self._show_about)

    def _create_widgets(self):
        """Create all GUI widgets"""

        # ===== Header =====
        self.header_frame = ttk.Frame(self.root, bootstyle=PRIMARY)

        self.title_label = ttk.Label(
            self.header_frame,
            text="💽 ioDD Rebuilder",
            font=("Segoe UI", 20, "bold"),
            bootstyle="inverse-primary"
        )

        self.subtitle_label = ttk.Label(
            self.header_frame,
            text="Wipe an ioDD drive and rebuild it from a folder • Disk images are copied first",
            font=("Segoe UI", 10),
            bootstyle="inverse-primary"
        )

        # ===== Main Content Area =====
        self.content_frame = ttk.Frame(self.root)

        # Step 1 - Source folder
        self.source_panel = ttk.Labelframe(
            self.content_frame,
            text="Step 1: Select Source Folder",
            bootstyle=INFO,
            padding=10
        )
        self.source_var = ttk.StringVar()
        self.source_entry = ttk.Entry(self.source_panel, textvariable=self.source_var)
        self.browse_button = ttk.Button(
            self.source_panel,
            text="📁 Browse...",
            command=self._browse_source,
            bootstyle="info-outline",
            width=14
        )

        # Step 2 - Destination drive
        self.dest_panel = ttk.Labelframe(
            self.content_frame,
            text="Step 2: Select Destination Drive",
            bootstyle=INFO,
            padding=10
        )
        self.dest_var = ttk.StringVar()
        self.dest_combo = ttk.Combobox(self.dest_panel, textvariable=self.dest_var, state="readonly")
        self.refresh_button = ttk.Button(
            self.dest_panel,
            text="🔄 Refresh",
            command=self._refresh_volumes,
            bootstyle="info-outline",
            width=14
        )

        # Step 3 - Options and start
        self.options_panel = ttk.Labelframe(
            self.content_frame,
            text="Step 3: Format and Copy",
            bootstyle=INFO,
            padding=10
        )
        ttk.Label(self.options_panel, text="File system:").pack(side=LEFT, padx=(0, 5))
        self.fs_var = ttk.StringVar(value=DEFAULT_FILESYSTEM)
        self.fs_combo = ttk.Combobox(
            self.options_panel,
            textvariable=self.fs_var,
            values=[fs.value for fs in FileSystem],
            state="readonly",
            width=10
        )
        self.fs_combo.pack(side=LEFT)
        ttk.Label(self.options_panel, text=f"Label: {DEFAULT_LABEL}",
                  foreground="gray").pack(side=LEFT, padx=(15, 5))

        self.start_button = ttk.Button(
            self.options_panel,
            text="🚀 Start Rebuild",
            command=self._start_rebuild,
            bootstyle=SUCCESS,
            width=20
        )
        self.cancel_button = ttk.Button(
            self.options_panel,
            text="Cancel",
            command=self._cancel_rebuild,
            bootstyle="danger-outline",
            width=12,
            state=DISABLED
        )

        # ===== Bottom Panel - Progress =====
        self.bottom_frame = ttk.Frame(self.root)
        self.progress_panel = ProgressPanel(self.bottom_frame)

        # ===== Log Panel =====
        self.log_panel = LogPanel(self.root, log_file_getter=lambda: self.log_file)

        # ===== Status Bar =====
        self.status_frame = ttk.Frame(self.root, bootstyle=DARK)

        self.status_label = ttk.Label(
            self.status_frame,
            text="Ready. Pick a source folder and a destination drive, then click 'Start Rebuild'.",
            font=("Segoe UI", 9),
            foreground="white",
            bootstyle="inverse-dark"
        )

        self.log_toggle_btn = ttk.Button(
            self.status_frame,
            text="Show Log",
            command=self._toggle_log_panel,
            bootstyle="info-outline",
            width=12
        )

    def _layout_widgets(self):
        """Layout all widgets"""

        # Header
        self.header_frame.pack(fill=X, pady=(0, 5))
        self.title_label.pack(pady=(10, 3))
        self.subtitle_label.pack(pady=(0, 10))

        # Steps stacked vertically
        self.content_frame.pack(fill=X, padx=8, pady=3)
        self.source_panel.pack(fill=X, pady=(0, 5))
        self.source_entry.pack(side=LEFT, fill=X, expand=YES, padx=(0, 10))
        self.browse_button.pack(side=LEFT)

        self.dest_panel.pack(fill=X, pady=5)
        self.dest_combo.pack(side=LEFT, fill=X, expand=YES, padx=(0, 10))
        self.refresh_button.pack(side=LEFT)

        self.options_panel.pack(fill=X, pady=(5, 0))
        self.cancel_button.pack(side=RIGHT, padx=(5, 0))
        self.start_button.pack(side=RIGHT)

        # Bottom panel
        self.bottom_frame.pack(fill=X, padx=8, pady=5)
        self.progress_panel.pack(fill=X)

        # Log panel packs itself in show()

        # Status bar
        self.status_frame.pack(fill=X, side=BOTTOM)
        self.status_label.pack(side=LEFT, pady=5, padx=10)
        self.log_toggle_btn.pack(side=RIGHT, pady=5, padx=10)

    def _browse_source(self):
        folder = filedialog.askdirectory(
            title="Select the folder to copy onto the drive",
            initialdir=self.source_var.get() or None
        )
        if folder:
            self.source_var.set(os.path.normpath(folder))

    def _refresh_volumes(self):
        """Reload the destination drop-down"""
        if self.volume_manager is None:
            self._update_status("Drive listing is only available on Windows.")
            return

        self.volumes = self.volume_manager.list_volumes()
        labels = [self._volume_label(v) for v in self.volumes]
        self.dest_combo.config(values=labels)

        if labels:
            self.dest_combo.current(0)
            self._update_status(f"Found {len(labels)} drive(s).")
        else:
            self.dest_var.set("")
            self._update_status("No removable drives found. Connect the ioDD and click 'Refresh'.")

    @staticmethod
    def _volume_label(volume):
        kind = "Removable" if volume['removable'] else "Fixed"
        name = volume['label'] or "No label"
        return (f"{volume['letter']}:  {name}  ({volume['file_system']}, "
                f"{volume['total_gb']:.1f} GB, {kind})")

    def _selected_volume(self):
        index = self.dest_combo.current()
        if index < 0 or index >= len(self.volumes):
            return None
        return self.volumes[index]

    def _start_rebuild(self):
        """Confirm, then format and copy on a worker thread"""
        source = self.source_var.get().strip()
        volume = self._selected_volume()

        if not source or not os.path.isdir(source):
            self.show_custom_info("No Source Folder", "Please select an existing source folder.",
                                  width=450, height=200)
            return
        if volume is None:
            self.show_custom_info("No Destination", "Please select a destination drive.",
                                  width=450, height=200)
            return
        if self.volume_manager is None:
            self.show_custom_info("Unsupported Platform", "Formatting requires Windows.",
                                  width=450, height=200)
            return

        filesystem = self.fs_var.get()
        letter = volume['letter']

        fat32_note = ""
        if filesystem == FileSystem.FAT32.value and volume['total_bytes'] > FAT32_ADVISORY_LIMIT:
            fat32_note = "\n\nNote: Windows may refuse to format FAT32 volumes larger than 32 GB."

        response = self.show_custom_confirm(
            "Confirm Rebuild",
            f"⚠️ WARNING ⚠️\n\n"
            f"This will FORMAT drive {letter}: as {filesystem} and ERASE ALL DATA on it:\n"
            f"{self._volume_label(volume)}\n\n"
            f"Source folder ({source}) will NOT be modified.{fat32_note}\n\n"
            f"Are you sure you want to continue?",
            yes_text="Yes, Continue",
            no_text="Cancel",
            style="warning",
            width=600,
            height=420
        )
        if not response:
            return

        response2 = self.show_custom_confirm(
            "Final Confirmation",
            f"⚠️ LAST WARNING ⚠️\n\n"
            f"All data on {letter}: will be PERMANENTLY ERASED.\n\n"
            f"This action cannot be undone!",
            yes_text=f"Yes, ERASE {letter}: and Rebuild",
            no_text="Cancel",
            style="danger",
            width=550,
            height=330
        )
        if not response2:
            return

        if self.enable_file_logging:
            self.log_file = self.enable_file_logging()
            logger.info(f"Rebuild started - logging to {self.log_file}")

        self._save_preferences()

        options = RebuildOptions(filesystem=filesystem)
        orchestrator = FormatOrchestrator(WindowsFormatBackend(), self.volume_manager)
        self.events = queue.Queue()
        self.controller = RunController(source, letter, options, self.volume_manager,
                                        orchestrator, events=self.events)

        self._set_ui_enabled(False)
        self._update_status("Rebuild in progress...")
        self.progress_panel.start()

        self.controller.start()
        self.root.after(POLL_INTERVAL_MS, self._poll_events)

    def _cancel_rebuild(self):
        if self.controller is not None:
            self.cancel_button.config(state=DISABLED)
            self._update_status("Cancelling... waiting for the current step to stop.")
            self.controller.cancel()

    def _poll_events(self):
        """Drain worker events on the Tk thread"""
        latest = None
        result = None
        try:
            while True:
                event = self.events.get_nowait()
                if isinstance(event, RunResult):
                    result = event
                elif isinstance(event, ProgressSnapshot):
                    latest = event
        except queue.Empty:
            pass

        if latest is not None:
            self.progress_panel.update_snapshot(latest)
            if latest.current_file:
                self._update_status(f"{latest.stage} - {latest.current_file}")
            else:
                self._update_status(f"{latest.stage}...")

        if result is not None:
            self._on_run_finished(result)
        else:
            self.root.after(POLL_INTERVAL_MS, self._poll_events)

    def _on_run_finished(self, result: RunResult):
        self.controller = None
        self._set_ui_enabled(True)
        elapsed = f"{result.elapsed_seconds:.1f}s"

        if result.status == RunStatus.SUCCEEDED:
            self.progress_panel.complete(result.snapshot)
            self._update_status(f"Rebuild completed in {elapsed}.")
            self.show_custom_info(
                "Rebuild Complete",
                f"✓ Drive rebuilt successfully!\n\n"
                f"{result.files_copied} file(s) copied in {elapsed}.",
                width=500,
                height=230
            )
        elif result.status == RunStatus.NOTHING_TO_DO:
            self.progress_panel.nothing_to_do()
            self._update_status("Drive formatted. The source folder has no files to copy.")
        elif result.status == RunStatus.CANCELLED:
            self.progress_panel.cancelled()
            self._update_status(f"Rebuild cancelled after {result.files_copied} file(s).")
        else:
            self.progress_panel.error()
            self._update_status(f"Rebuild failed: {result.error}")
            self.show_custom_info(
                "Rebuild Failed",
                f"Rebuild failed with error:\n\n{result.error}\n\n"
                f"The drive may contain a partial copy.",
                width=550,
                height=280
            )

    def _set_ui_enabled(self, enabled):
        """Enable/disable inputs while a rebuild runs"""
        state = NORMAL if enabled else DISABLED
        combo_state = "readonly" if enabled else DISABLED

        self.source_entry.config(state=state)
        self.browse_button.config(state=state)
        self.refresh_button.config(state=state)
        self.start_button.config(state=state)
        self.dest_combo.config(state=combo_state)
        self.fs_combo.config(state=combo_state)
        self.cancel_button.config(state=DISABLED if enabled else NORMAL)

    def _update_status(self, message):
        self.status_label.config(text=message)

    def _toggle_log_panel(self):
        """Toggle log panel visibility"""
        self.log_panel.toggle()

        if self.log_panel.is_visible():
            self.log_toggle_btn.config(text="Hide Log")
        else:
            self.log_toggle_btn.config(text="Show Log")
        save_preferences({'log_panel_visible': self.log_panel.is_visible()})

    def _on_close(self):
        if self.controller is not None:
            if not self.show_custom_confirm(
                "Rebuild Running",
                "A rebuild is still running.\n\nCancel it and exit?",
                yes_text="Cancel and Exit",
                no_text="Keep Running",
                style="danger"
            ):
                return
            self.controller.cancel()
            self.controller.join(timeout=5)
        self.root.destroy()

    def show_custom_info(self, title, message, width=400, height=200):
        """Show a centered modal info dialog"""
        dialog, frame = self._create_dialog(title, width, height)

        ttk.Label(frame, text=message, wraplength=width - 60, justify=CENTER).pack(pady=20)
        ttk.Button(frame, text="OK", command=dialog.destroy, bootstyle="primary").pack()

        self._present_dialog(dialog, width, height)
        self.root.wait_window(dialog)

    def show_custom_confirm(self, title, message, yes_text="Yes", no_text="No", style="primary",
                            width=450, height=250):
        """Show a centered confirmation dialog that returns True or False."""
        dialog, frame = self._create_dialog(title, width, height)
        result = [False]

        def on_yes():
            result[0] = True
            dialog.destroy()

        ttk.Label(frame, text=message, wraplength=width - 60, justify=CENTER).pack(pady=20)

        button_frame = ttk.Frame(frame)
        button_frame.pack(pady=(10, 0))
        ttk.Button(button_frame, text=yes_text, command=on_yes, bootstyle=style).pack(side=LEFT, padx=5)
        ttk.Button(button_frame, text=no_text, command=dialog.destroy,
                   bootstyle="secondary").pack(side=LEFT, padx=5)

        self._present_dialog(dialog, width, height)
        self.root.wait_window(dialog)
        return result[0]

    def _create_dialog(self, title, width, height):
        dialog = ttk.Toplevel(self.root)
        dialog.title(title)
        dialog.transient(self.root)
        # Withdrawn until positioned, avoids a flash at the default spot
        dialog.withdraw()
        dialog.grab_set()

        frame = ttk.Frame(dialog, padding=20)
        frame.pack(fill=BOTH, expand=True)
        return dialog, frame

    def _present_dialog(self, dialog, width, height):
        # Scale down for 1080p
        if self.root.winfo_screenheight() < 1440:
            width = int(width * 0.75)
            height = int(height * 0.75)

        dialog.update_idletasks()
        x = self.root.winfo_x() + (self.root.winfo_width() // 2) - (width // 2)
        y = self.root.winfo_y() + (self.root.winfo_height() // 2) - (height // 2)
        dialog.geometry(f"{width}x{height}+{x}+{y}")
        dialog.deiconify()

        dialog.lift()
        dialog.attributes('-topmost', True)
        dialog.after(100, lambda: dialog.attributes('-topmost', False))
        dialog.focus_force()

    def _show_usage_guide(self):
        self._show_scrollable_dialog("Usage Guide", """IODD REBUILDER - USAGE

1. Click 'Browse...' and pick the folder that holds your ioDD content
   (ISO/VHD/IMG images and any other files).
2. Connect the ioDD and pick it in the destination list.
   Click 'Refresh' if it does not show up.
3. Pick the file system (exFAT is recommended) and click 'Start Rebuild'.

The drive is formatted with label IODD. If the quick format cannot be
verified, a DiskPart format is tried once. After formatting, the drive
root is emptied and the folder is copied file by file. Disk images are
copied first, largest first, so they are laid out contiguously.

Cancel stops at the next file chunk. Files already copied stay on the
drive; the file being copied may be incomplete.
""")

    def _show_about(self):
        import __main__
        version = getattr(__main__, '__version__', '1.0.0')

        self._show_scrollable_dialog("About ioDD Rebuilder", f"""IODD REBUILDER

Version: {version}

Formats an ioDD drive and rebuilds its contents from a folder,
with disk images copied first to reduce fragmentation.
""", width=500, height=330)

    def _show_scrollable_dialog(self, title, content, width=600, height=500):
        """Show a scrollable text dialog"""
        dialog, frame = self._create_dialog(title, width, height)

        text_frame = ttk.Frame(frame)
        text_frame.pack(fill=BOTH, expand=True, pady=(0, 10))

        scrollbar = ttk.Scrollbar(text_frame)
        scrollbar.pack(side=RIGHT, fill=Y)

        text_widget = ttk.Text(
            text_frame,
            wrap='word',
            yscrollcommand=scrollbar.set,
            font=("Consolas", 9),
            padx=10,
            pady=10,
            height=15
        )
        text_widget.pack(side=LEFT, fill=BOTH, expand=True)
        scrollbar.config(command=text_widget.yview)

        text_widget.insert('1.0', content)
        text_widget.config(state='disabled')

        ttk.Button(frame, text="Close", command=dialog.destroy, bootstyle="primary", width=15).pack()

        self._present_dialog(dialog, width, height)

    def _save_preferences(self):
        save_preferences({
            'last_source': self.source_var.get(),
            'filesystem': self.fs_var.get(),
        })

    def _load_preferences(self):
        """Restore last source folder, file system and log panel state"""
        prefs = load_preferences()

        if prefs.get('last_source'):
            self.source_var.set(prefs['last_source'])
        if prefs.get('filesystem') in [fs.value for fs in FileSystem]:
            self.fs_var.set(prefs['filesystem'])
        if prefs.get('log_panel_visible', False):
            self.log_panel.show()
            self.log_toggle_btn.config(text="Hide Log")
