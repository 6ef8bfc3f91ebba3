"""Long-term memory. A chronological markdown log, one entry per line."""

import os
from datetime import datetime, timezone

from safellm.globals import MEMORY_FILE, log_exception


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


class MemoryLog:
    """Handles memory-related I/O"""

    def __init__(self, path: str = MEMORY_FILE):
        self.path = path

    def _read_lines(self) -> list[str]:
        with open(self.path, "r", encoding="utf-8") as f:
            return f.read().split("\n")

    def _write_lines(self, lines: list[str]):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("\n".join(lines))

    def save(self, memory: str) -> bool:
        """Appends a timestamped entry."""
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(f"\n- [{_timestamp()}] {memory}")
        except OSError as e:
            log_exception(e, "Error in MemoryLog.save()")
            return False
        return True

    def read(self) -> str:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError:
            return "No memories found."

    def delete(self, fragment: str) -> bool:
        """Drops every line containing `fragment`. False if nothing matched."""
        fragment = fragment.strip()
        if not fragment:
            return False
        try:
            lines = self._read_lines()
            kept = [line for line in lines if fragment not in line]
            if len(kept) == len(lines):
                return False
            self._write_lines(kept)
        except OSError as e:
            log_exception(e, "Error in MemoryLog.delete()")
            return False
        return True

    def replace(self, original: str, new_content: str) -> bool:
        """Rewrites every line containing `original` as a fresh entry."""
        original = original.strip()
        if not original:
            return False
        try:
            lines = self._read_lines()
            found = False
            for i, line in enumerate(lines):
                if original in line:
                    lines[i] = f"- [{_timestamp()}] {new_content}"
                    found = True
            if not found:
                return False
            self._write_lines(lines)
        except OSError as e:
            log_exception(e, "Error in MemoryLog.replace()")
            return False
        return True
