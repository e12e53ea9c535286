"""
Log Panel Widget - Toggleable log view with level filter, export and log file access
"""

import os
import sys
import logging
import subprocess
from collections import deque, namedtuple
from datetime import datetime
from tkinter import filedialog, messagebox

import ttkbootstrap as ttk
from ttkbootstrap.constants import *

LogEntry = namedtuple('LogEntry', 'timestamp level message')

LEVEL_COLORS = {
    'DEBUG': '#888888',
    'INFO': '#FFFFFF',
    'WARNING': '#FFA500',
    'ERROR': '#FF4444',
    'CRITICAL': '#FF0000',
}

MAX_ENTRIES = 10000


class LogPanel(ttk.Frame):
    """Log view shown below the progress panel, hidden by default"""

    def __init__(self, parent, log_file_getter=None, **kwargs):
        super().__init__(parent, **kwargs)

        self.visible = False
        self.entries = deque(maxlen=MAX_ENTRIES)
        self.log_file_getter = log_file_getter

        self._build()

    def _build(self):
        toolbar = ttk.Frame(self, bootstyle=SECONDARY)
        toolbar.pack(fill=X, pady=(5, 0))

        ttk.Label(toolbar, text="📋 Rebuild Log", font=("Segoe UI", 10, "bold"),
                  bootstyle="inverse-secondary").pack(side=LEFT, padx=10, pady=5)
        self.count_label = ttk.Label(toolbar, text="0 entries", font=("Segoe UI", 9),
                                     bootstyle="inverse-secondary")
        self.count_label.pack(side=LEFT, padx=10)

        self.auto_scroll_var = ttk.BooleanVar(value=True)
        ttk.Checkbutton(toolbar, text="Auto-scroll", variable=self.auto_scroll_var,
                        command=self._scroll_if_following,
                        bootstyle="toolbutton").pack(side=RIGHT, padx=10, pady=5)

        for text, command, width in (("Open Log File", self.open_log_file, 14),
                                     ("Save Log", self._export, 10),
                                     ("Clear", self._clear, 10)):
            style = "secondary-outline" if text == "Clear" else "info-outline"
            ttk.Button(toolbar, text=text, command=command, bootstyle=style,
                       width=width).pack(side=RIGHT, padx=5, pady=5)

        self.level_var = ttk.StringVar(value='INFO')
        level_combo = ttk.Combobox(toolbar, textvariable=self.level_var, state="readonly", width=9,
                                   values=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
        level_combo.pack(side=RIGHT, padx=5)
        level_combo.bind('<<ComboboxSelected>>', lambda e: self._render_all())
        ttk.Label(toolbar, text="Show:", bootstyle="inverse-secondary").pack(side=RIGHT)

        body = ttk.Frame(self)
        body.pack(fill=BOTH, expand=True, pady=(0, 5))
        scrollbar = ttk.Scrollbar(body)
        scrollbar.pack(side=RIGHT, fill=Y)

        # Plain Tk Text: colors are set by hand to match the darkly theme
        self.text = ttk.Text(body, wrap='word', yscrollcommand=scrollbar.set, font=("Consolas", 9),
                             height=10, state='disabled', background='#222222', foreground='#FFFFFF',
                             insertbackground='#FFFFFF', relief='flat', borderwidth=0)
        self.text.pack(side=LEFT, fill=BOTH, expand=True)
        scrollbar.config(command=self.text.yview)

        for level, color in LEVEL_COLORS.items():
            self.text.tag_config(level, foreground=color)
        self.text.tag_config('CRITICAL', font=("Consolas", 9, "bold"))

    def show(self):
        if not self.visible:
            self.visible = True
            self.pack(fill=BOTH, expand=False, padx=8, pady=(5, 0))

    def hide(self):
        if self.visible:
            self.visible = False
            self.pack_forget()

    def toggle(self):
        if self.visible:
            self.hide()
        else:
            self.show()

    def is_visible(self):
        return self.visible

    def _passes_filter(self, level):
        return logging.getLevelName(level) >= logging.getLevelName(self.level_var.get())

    @staticmethod
    def _format(entry):
        return f"[{entry.timestamp}] {entry.level:8s}: {entry.message}\n"

    def append_log(self, level, message):
        """Record an entry and show it if it passes the level filter"""
        entry = LogEntry(datetime.now().strftime('%H:%M:%S'), level, message)
        self.entries.append(entry)

        if self._passes_filter(level):
            self.text.config(state='normal')
            self.text.insert('end', self._format(entry), level)
            # Keep the widget bounded like the entry buffer
            if int(self.text.index('end-1c').split('.')[0]) > MAX_ENTRIES:
                self.text.delete('1.0', '2.0')
            self.text.config(state='disabled')
            self._scroll_if_following()

        self._update_count()

    def _render_all(self):
        self.text.config(state='normal')
        self.text.delete('1.0', 'end')
        for entry in self.entries:
            if self._passes_filter(entry.level):
                self.text.insert('end', self._format(entry), entry.level)
        self.text.config(state='disabled')
        self._scroll_if_following()

    def _scroll_if_following(self):
        if self.auto_scroll_var.get():
            self.text.see('end')

    def _clear(self):
        if messagebox.askyesno("Clear Log",
                               "Clear all entries from this view?\n\nThe log file on disk is kept.",
                               icon='warning'):
            self.entries.clear()
            self._render_all()
            self._update_count()

    def _export(self):
        """Write the buffered entries (all levels) to a file of the user's choice"""
        if not self.entries:
            messagebox.showinfo("No Logs", "There are no log entries to save.")
            return

        filename = filedialog.asksaveasfilename(
            defaultextension=".log",
            filetypes=[("Log files", "*.log"), ("Text files", "*.txt"), ("All files", "*.*")],
            initialfile=f"iodd_rebuilder_export_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        )
        if not filename:
            return

        try:
            with open(filename, 'w', encoding='utf-8') as f:
                f.write("ioDD Rebuilder - Log Export\n")
                f.write(f"Exported: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
                f.write("=" * 80 + "\n\n")
                f.writelines(self._format(entry) for entry in self.entries)
        except OSError as e:
            messagebox.showerror("Save Failed", f"Failed to save log file:\n\n{e}")
            return

        messagebox.showinfo("Log Saved", f"Log saved to:\n{filename}")

    def open_log_file(self):
        """Open this session's log file in the default editor"""
        log_file = self.log_file_getter() if self.log_file_getter else None
        if not log_file or not os.path.exists(log_file):
            messagebox.showinfo("No Log File", "No log file has been written yet.\n\n"
                                               "The log file is created when a rebuild starts.")
            return

        try:
            if sys.platform == 'win32':
                os.startfile(log_file)
            elif sys.platform == 'darwin':
                subprocess.run(['open', log_file])
            else:
                subprocess.run(['xdg-open', log_file])
        except OSError as e:
            messagebox.showerror("Error Opening Log", f"Failed to open log file:\n\n{e}")

    def _update_count(self):
        count = len(self.entries)
        self.count_label.config(text=f"{count} {'entry' if count == 1 else 'entries'}")


class GUILogHandler(logging.Handler):
    """Logging handler that forwards records to the log panel on the Tk thread"""

    def __init__(self, log_panel):
        super().__init__()
        self.log_panel = log_panel

    def emit(self, record):
        try:
            # The panel adds its own timestamp and level prefix
            self.log_panel.after(0, self.log_panel.append_log, record.levelname, record.getMessage())
        except Exception:
            self.handleError(record)
