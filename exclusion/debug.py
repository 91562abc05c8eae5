"""
Debug output for the storage, import and command line layers.

Lines go to stderr as "[HH:MM:SS] TAG: message" and are only written once
debugging has been switched on (the --debug command line flag). The index
itself never prints anything.
"""

from datetime import datetime
import sys


_enabled: bool = False


def set_debug(enabled: bool) -> None:
    global _enabled
    _enabled = enabled


def debug_print(tag: str, msg: str) -> None:
    if not _enabled:
        return
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] {tag}: {msg}", file=sys.stderr)
