from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from typing import Callable, List, Optional

from .api import TextStoreAPI, TransportError
from .config import ConfigError, Settings, load_settings
from .export import write_exports
from .logging_utils import crash_hint, install_excepthook, log_exception_context, setup_logging
from .models import SLOT_COUNT, validate_slot
from .session import EditorSession, SessionBusyError

logger = logging.getLogger(__name__)

InputFn = Callable[[str], str]


def _confirm(prompt: str, input_fn: InputFn = input) -> bool:
    ans = input_fn(f"{prompt} (y/N): ").strip().lower()
    return ans in ("y", "yes")


def _human_time(ts: Optional[datetime]) -> str:
    if ts is None:
        return "-"
    return ts.astimezone().strftime("%H:%M:%S")


def _describe_error(e: Exception) -> str:
    method = getattr(e, "method", None)
    url = getattr(e, "url", None)
    if method and url:
        return f"{e} ({method} {url})"
    return str(e)


def _read_multiline(input_fn: InputFn = input) -> str:
    print("Enter markdown; finish with a line containing only '.'")
    lines: List[str] = []
    while True:
        line = input_fn("")
        if line == ".":
            break
        lines.append(line)
    return "\n".join(lines)


def build_session(settings: Settings) -> EditorSession:
    return EditorSession(TextStoreAPI(settings), save_mode=settings.save_mode)


def print_slots(session: EditorSession) -> None:
    records = session.records
    for slot in range(1, SLOT_COUNT + 1):
        rec = records.get(slot)
        marker = ">" if slot == session.selected_slot else " "
        if rec is None:
            print(f"{marker} {slot:2d}: -")
        else:
            filled = "*" if rec.content else " "
            print(f"{marker} {slot:2d}:{filled}{rec.title}")


def print_current(session: EditorSession) -> None:
    dirty = " (unsaved)" if session.dirty else ""
    print(f"--- Text {session.selected_slot}{dirty} ---")
    print(f"# {session.draft_title}\n")
    print(session.draft_content or "(empty)")


def run_smoke_noninteractive(settings: Settings) -> int:
    """Read-only check: configuration is usable and the table can be listed."""
    print(f"[INFO] Backend: {settings.collection_url}")
    session = build_session(settings)
    try:
        records = session.load_all()
    except TransportError as e:
        print(f"[FAIL] Listing texts failed: {_describe_error(e)}")
        return 2
    print(f"[OK] {len(records)} text(s) stored")
    print("[SUCCESS] Smoke validation completed.")
    return 0


def run_interactive(session: EditorSession, input_fn: InputFn = input) -> int:
    menu = [
        ("1", "Select text (1-24)"),
        ("2", "Show current text"),
        ("3", "Edit title"),
        ("4", "Edit content"),
        ("5", "Save"),
        ("6", "Delete"),
        ("7", "Export current as .md"),
        ("8", "Export all as .md"),
        ("9", "Reload"),
        ("10", "List texts"),
        ("0", "Exit"),
    ]
    while True:
        print(
            f"\n<---- Commands ---->  [Text: {session.selected_slot} | "
            f"Stored: {len(session.records)} | Last saved: {_human_time(session.last_saved_at)}]"
        )
        for k, v in menu:
            print(f"  {k}: {v}")
        cmd = input_fn("Command: ").strip().lower()

        try:
            if cmd == "0":
                if session.dirty and not _confirm("Discard unsaved changes?", input_fn):
                    continue
                print("Bye!")
                return 0
            elif cmd == "1":
                try:
                    slot = validate_slot(int(input_fn(f"Text (1-{SLOT_COUNT}): ").strip()))
                except ValueError:
                    print("Invalid text number")
                    continue
                if session.dirty and not _confirm("Discard unsaved changes?", input_fn):
                    continue
                session.select_slot(slot)
                print_current(session)
            elif cmd == "2":
                print_current(session)
            elif cmd == "3":
                # Empty keeps the title, "-" clears it
                answer = input_fn(f"Title [{session.draft_title}] ('-' to clear): ")
                if answer == "-":
                    session.draft_title = ""
                elif answer:
                    session.draft_title = answer
            elif cmd == "4":
                session.draft_content = _read_multiline(input_fn)
            elif cmd == "5":
                saved = session.save()
                if saved is None:
                    print("Nothing to save.")
                else:
                    print(f"Saved text {saved.slot_number} at {_human_time(session.last_saved_at)}")
            elif cmd == "6":
                if session.record(session.selected_slot) is None:
                    print("Nothing stored for this text.")
                    continue
                if session.delete(lambda n: _confirm(f"Really delete text {n}?", input_fn)):
                    print(f"Deleted text {session.selected_slot}")
                else:
                    print("Cancelled.")
            elif cmd == "7":
                directory = input_fn("Directory [.]: ").strip() or "."
                for path in write_exports(directory, [session.export_current()]):
                    print(f"Wrote {path}")
            elif cmd == "8":
                directory = input_fn("Directory [.]: ").strip() or "."
                paths = write_exports(directory, session.export_all())
                print(f"Wrote {len(paths)} file(s) to {directory}")
            elif cmd == "9":
                if session.dirty and not _confirm("Discard unsaved changes?", input_fn):
                    continue
                records = session.load_all()
                print(f"Loaded {len(records)} text(s)")
            elif cmd == "10":
                print_slots(session)
            else:
                print("Unknown command")
        except (TransportError, SessionBusyError) as e:
            logger.debug("Command %s failed", cmd, exc_info=True)
            print(f"[ERROR] {_describe_error(e)}")
        except OSError as e:
            logger.warning("Writing files failed: %s", e)
            print(f"[ERROR] Writing files failed: {e}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="adventeditor", description="Editor for 24 numbered markdown texts")
    parser.add_argument("--gui", action="store_true", help="Launch GUI instead of CLI")
    parser.add_argument("--noninteractive", action="store_true", help="Run a read-only smoke check and exit")
    parser.add_argument("--list", action="store_true", help="List stored texts and exit")
    parser.add_argument("--export", nargs=2, metavar=("TEXT", "DIR"), help="Write one text as .md into DIR")
    parser.add_argument("--export-all", metavar="DIR", help="Write every stored text as .md into DIR")
    parser.add_argument("--env-file", default=None, help="Settings file (default .env/env_data.txt)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug output to the console")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(console_level=logging.DEBUG if args.verbose else logging.WARNING)
    install_excepthook()

    try:
        settings = load_settings(env_path=args.env_file) if args.env_file else load_settings()
    except ConfigError as e:
        print(f"[ERROR] {e}")
        return 1

    if args.gui:
        from .gui import run as run_gui
        return run_gui(settings)
    if args.noninteractive:
        return run_smoke_noninteractive(settings)

    session = build_session(settings)
    if not (args.list or args.export or args.export_all):
        print("adventeditor (CLI)\n")
        try:
            session.load_all()
        except TransportError as e:
            print(f"[ERROR] Loading texts failed: {_describe_error(e)}")
        return run_interactive(session)

    try:
        session.load_all()
        if args.list:
            print_slots(session)
            return 0
        if args.export:
            try:
                slot = validate_slot(int(args.export[0]))
            except ValueError:
                print(f"[ERROR] Invalid text number: {args.export[0]}")
                return 1
            if session.record(slot) is None:
                print(f"[ERROR] Text {slot} is not stored")
                return 1
            session.select_slot(slot)
            for path in write_exports(args.export[1], [session.export_current()]):
                print(f"Wrote {path}")
            return 0
        if args.export_all:
            paths = write_exports(args.export_all, session.export_all())
            print(f"Wrote {len(paths)} file(s) to {args.export_all}")
    except TransportError as e:
        print(f"[ERROR] {_describe_error(e)}")
        return 2
    except OSError as e:
        log_exception_context("Export failed")
        print(f"[ERROR] Writing files failed: {e}")
        print(crash_hint())
        return 3
    return 0


if __name__ == "__main__":
    sys.exit(main())
