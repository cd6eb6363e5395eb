from __future__ import annotations

import logging
import threading
import tkinter as tk
from tkinter import filedialog, messagebox, ttk
from typing import Callable, Dict, Optional

from .config import Settings
from .export import write_exports
from .logging_utils import crash_hint, log_exception_context
from .models import SLOT_COUNT, TextRecord
from .session import EditorSession, SessionObserver, SessionState
from .utils import write_text

logger = logging.getLogger(__name__)

_SLOT_COLUMNS = 12
_COLOR_SELECTED = ("#2563eb", "white")
_COLOR_FILLED = ("#dcfce7", "#166534")
_COLOR_EMPTY = ("#f3f4f6", "#4b5563")


class _GUISessionObserver(SessionObserver):
    """Marshals session callbacks onto the Tk main loop."""

    def __init__(self, gui: "EditorGUI"):
        self.gui = gui

    def on_state_changed(self, state: SessionState) -> None:
        self.gui.after(0, lambda: self.gui._apply_state(state))

    def on_records_changed(self, records: Dict[int, TextRecord]) -> None:
        self.gui.after(0, self.gui._refresh_slots)

    def on_draft_reset(self, slot: int, title: str, content: str) -> None:
        self.gui.after(0, lambda: self.gui._show_draft(slot, title, content))


class EditorGUI(ttk.Frame):
    def __init__(self, master: tk.Misc, session: EditorSession, settings: Optional[Settings] = None):
        super().__init__(master)
        self.session = session
        root = self.winfo_toplevel()
        root.title("Markdown Text Editor")
        root.geometry("1100x760")
        root.minsize(760, 560)

        self.status_var = tk.StringVar(value="")
        self.last_saved_var = tk.StringVar(value="")
        self.heading_var = tk.StringVar(value="")
        self._slot_buttons: Dict[int, tk.Button] = {}
        self._action_buttons: Dict[str, ttk.Button] = {}

        self._build(settings)
        self.pack(fill=tk.BOTH, expand=True, padx=12, pady=12)

        session.add_observer(_GUISessionObserver(self))
        self._show_draft(session.selected_slot, session.draft_title, session.draft_content)
        self._refresh_slots()
        self._reload()

    # --- Layout ---
    def _build(self, settings: Optional[Settings]) -> None:
        header = ttk.Frame(self)
        header.pack(fill=tk.X)
        ttk.Label(header, text="Markdown Text Editor", font=("TkDefaultFont", 16, "bold")).pack(anchor=tk.W)
        if settings is not None:
            ttk.Label(header, text=settings.collection_url, foreground="#6b7280").pack(anchor=tk.W)

        grid = ttk.LabelFrame(self, text="Select text")
        grid.pack(fill=tk.X, pady=(8, 8))
        for num in range(1, SLOT_COUNT + 1):
            btn = tk.Button(grid, text=str(num), width=4, relief=tk.FLAT,
                            command=lambda n=num: self._select(n))
            row, col = divmod(num - 1, _SLOT_COLUMNS)
            btn.grid(row=row, column=col, padx=2, pady=2, sticky="ew")
            self._slot_buttons[num] = btn

        panes = ttk.PanedWindow(self, orient=tk.HORIZONTAL)
        panes.pack(fill=tk.BOTH, expand=True)

        editor = ttk.Frame(panes)
        ttk.Label(editor, textvariable=self.heading_var, font=("TkDefaultFont", 11, "bold")).pack(anchor=tk.W)
        ttk.Label(editor, textvariable=self.last_saved_var, foreground="#6b7280").pack(anchor=tk.W)
        self.title_entry = ttk.Entry(editor)
        self.title_entry.pack(fill=tk.X, pady=(6, 6))
        self.title_entry.bind("<KeyRelease>", self._on_edit)
        self.content_text = tk.Text(editor, wrap=tk.WORD, font=("TkFixedFont", 10), undo=True)
        self.content_text.pack(fill=tk.BOTH, expand=True)
        self.content_text.bind("<KeyRelease>", self._on_edit)
        panes.add(editor, weight=1)

        preview = ttk.Frame(panes)
        ttk.Label(preview, text="Preview", font=("TkDefaultFont", 11, "bold")).pack(anchor=tk.W)
        self.preview_title = ttk.Label(preview, text="", font=("TkDefaultFont", 14, "bold"))
        self.preview_title.pack(anchor=tk.W, pady=(6, 6))
        self.preview_text = tk.Text(preview, wrap=tk.WORD, font=("TkFixedFont", 10),
                                    background="#f9fafb", state=tk.DISABLED)
        self.preview_text.pack(fill=tk.BOTH, expand=True)
        panes.add(preview, weight=1)

        actions = ttk.Frame(self)
        actions.pack(fill=tk.X, pady=(8, 0))
        for key, label, handler in (
            ("save", "Save", self._save),
            ("delete", "Delete", self._delete),
            ("export", "Export .md", self._export_current),
            ("export_all", "Export all", self._export_all),
            ("reload", "Reload", self._reload),
        ):
            btn = ttk.Button(actions, text=label, command=handler)
            btn.pack(side=tk.LEFT, padx=(0, 6))
            self._action_buttons[key] = btn
        ttk.Label(actions, textvariable=self.status_var, foreground="#6b7280").pack(side=tk.RIGHT)

    # --- View updates (main thread) ---
    def _refresh_slots(self) -> None:
        for num, btn in self._slot_buttons.items():
            if num == self.session.selected_slot:
                bg, fg = _COLOR_SELECTED
            elif self.session.has_content(num):
                bg, fg = _COLOR_FILLED
            else:
                bg, fg = _COLOR_EMPTY
            btn.configure(background=bg, foreground=fg, activebackground=bg)
        self._apply_state(self.session.state)

    def _show_draft(self, slot: int, title: str, content: str) -> None:
        self.heading_var.set(f"Editor - Text {slot}")
        self.title_entry.delete(0, tk.END)
        self.title_entry.insert(0, title)
        self.content_text.delete("1.0", tk.END)
        self.content_text.insert("1.0", content)
        self._update_preview()

    def _update_preview(self) -> None:
        self.preview_title.configure(text=self.session.draft_title)
        self.preview_text.configure(state=tk.NORMAL)
        self.preview_text.delete("1.0", tk.END)
        self.preview_text.insert("1.0", self.session.draft_content or "Preview appears here...")
        self.preview_text.configure(state=tk.DISABLED)

    def _apply_state(self, state: SessionState) -> None:
        busy = state is not SessionState.IDLE
        has_record = self.session.record(self.session.selected_slot) is not None
        for key in ("save", "reload"):
            self._action_buttons[key].configure(state=tk.DISABLED if busy else tk.NORMAL)
        self._action_buttons["delete"].configure(
            state=tk.DISABLED if busy or not has_record else tk.NORMAL
        )
        self._action_buttons["save"].configure(text="Saving..." if state is SessionState.SAVING else "Save")
        self.status_var.set("Loading..." if state is SessionState.LOADING else "")
        if self.session.last_saved_at is not None:
            ts = self.session.last_saved_at.astimezone().strftime("%H:%M:%S")
            self.last_saved_var.set(f"Last saved: {ts}")

    def _on_edit(self, _event=None) -> None:
        self.session.draft_title = self.title_entry.get()
        self.session.draft_content = self.content_text.get("1.0", "end-1c")
        self._update_preview()

    # --- Actions ---
    def _run_async(self, desc: str, work: Callable[[], object], on_done: Optional[Callable[[object], None]] = None):
        def runner():
            err = None
            result = None
            try:
                result = work()
            except Exception as e:
                err = e
            def finish():
                if err:
                    logger.error("%s failed: %s", desc, err)
                    messagebox.showerror(f"{desc} failed", str(err))
                elif on_done:
                    on_done(result)
                self._refresh_slots()
            self.after(0, finish)
        threading.Thread(target=runner, daemon=True).start()

    def _select(self, slot: int) -> None:
        if self.session.busy:
            return
        self.session.select_slot(slot)
        self._refresh_slots()

    def _save(self) -> None:
        if self.session.busy:
            return
        self._on_edit()
        self._run_async("Save", self.session.save)

    def _delete(self) -> None:
        if self.session.busy:
            return
        slot = self.session.selected_slot
        # Ask on the main thread; the worker only sees the answer
        answer = messagebox.askyesno("Delete", f"Do you really want to delete text {slot}?")
        self._run_async("Delete", lambda: self.session.delete(lambda _n: answer))

    def _reload(self) -> None:
        if self.session.busy:
            return
        self._run_async("Load", self.session.load_all)

    def _export_current(self) -> None:
        self._on_edit()
        item = self.session.export_current()
        path = filedialog.asksaveasfilename(
            initialfile=item.filename,
            defaultextension=".md",
            filetypes=[("Markdown", "*.md"), ("All files", "*.*")],
        )
        if not path:
            return
        try:
            write_text(path, item.content)
        except OSError as e:
            messagebox.showerror("Export failed", str(e))
            return
        self.status_var.set(f"Wrote {path}")

    def _export_all(self) -> None:
        directory = filedialog.askdirectory(title="Export all texts to")
        if not directory:
            return
        try:
            paths = write_exports(directory, self.session.export_all())
        except OSError as e:
            messagebox.showerror("Export failed", str(e))
            return
        self.status_var.set(f"Wrote {len(paths)} file(s)")


def run(settings: Settings) -> int:
    from .cli import build_session

    try:
        root = tk.Tk()
    except tk.TclError:
        log_exception_context("Failed to initialize Tk root")
        print("[ERROR] Failed to initialize GUI (Tk).")
        print(crash_hint())
        return 3
    try:
        EditorGUI(root, build_session(settings), settings)
        root.mainloop()
    except Exception:
        log_exception_context("Unhandled error in GUI mainloop")
        print("[ERROR] Unhandled GUI error.")
        print(crash_hint())
        return 4
    return 0
