"""Ghost-text command suggestions for the root prompt."""

import asyncio
import threading
from typing import Callable

from prompt_toolkit.application.current import get_app
from prompt_toolkit.auto_suggest import Suggestion
from prompt_toolkit.buffer import Buffer
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings

from safellm.globals import COMMAND_PREFIX, COMMANDS

# Pause before a bare "/" reveals the first command, in seconds
ROOT_SUGGESTION_DELAY = 0.5


def call_later(delay: float, callback: Callable[[], None]):
    """
    Schedules `callback` after `delay` seconds and returns a cancellable handle.

    Uses the running event loop (prompt_toolkit's) when there is one.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer
    return loop.call_later(delay, callback)


class SuggestionEngine:
    """
    Computes the inline completion for the current line.

    Holds at most one pending reveal timer. Every refresh cancels it, so only an
    uninterrupted pause after a bare "/" gets to fire.
    """

    def __init__(
        self,
        commands: list[str] = COMMANDS,
        delay: float = ROOT_SUGGESTION_DELAY,
        scheduler: Callable = call_later,
        prefix: str = COMMAND_PREFIX,
    ):
        self.commands = commands
        self.delay = delay
        self.scheduler = scheduler
        self.prefix = prefix
        self.suggestion: str = ""
        self._timer = None
        self._root_revealed: bool = False

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def cancel(self):
        """Drops the pending reveal, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def reset(self):
        """Back to a blank line. Called between prompts."""
        self.cancel()
        self.suggestion = ""
        self._root_revealed = False

    def refresh(
        self,
        line: str,
        cursor: int,
        on_reveal: Callable[[str], None] | None = None,
    ) -> str:
        """Recomputes the suggestion after a keystroke. Returns the ghost text."""
        self.cancel()
        self.suggestion = ""

        if not line or not line.startswith(self.prefix) or cursor != len(line):
            self._root_revealed = False
            return ""

        if line == self.prefix:
            if self._root_revealed:
                self.suggestion = self.commands[0][len(line) :]
            else:
                self._timer = self.scheduler(
                    self.delay, lambda: self._reveal(line, on_reveal)
                )
            return self.suggestion

        match = next(
            (c for c in self.commands if c.startswith(line) and c != line), None
        )
        if match:
            self.suggestion = match[len(line) :]
        return self.suggestion

    def _reveal(self, line: str, on_reveal: Callable[[str], None] | None):
        """Timer callback: latch the root reveal and surface the first command."""
        self._timer = None
        self._root_revealed = True
        self.suggestion = self.commands[0][len(line) :]
        if on_reveal:
            on_reveal(self.suggestion)

    def accept(self, line: str, cursor: int) -> str | None:
        """Returns the remainder to insert, or None if nothing can be accepted."""
        if not self.suggestion or cursor != len(line):
            return None
        remainder = self.suggestion
        self.suggestion = ""
        return remainder


def attach_suggestions(buffer: Buffer, engine: SuggestionEngine):
    """
    Drives the engine from a prompt_toolkit buffer.

    Text and cursor changes refresh the suggestion; a fired reveal writes
    `buffer.suggestion` and asks the app to redraw. The ghost text itself is
    drawn by prompt_toolkit's AppendAutoSuggestion processor.
    """

    def _reveal(text: str):
        doc = buffer.document
        if doc.text == engine.prefix and doc.is_cursor_at_the_end:
            buffer.suggestion = Suggestion(text)
            get_app().invalidate()

    def _on_change(buf: Buffer):
        text = engine.refresh(buf.text, buf.cursor_position, _reveal)
        buf.suggestion = Suggestion(text) if text else None

    buffer.on_text_changed += _on_change
    buffer.on_cursor_position_changed += _on_change


def suggestion_bindings(engine: SuggestionEngine) -> KeyBindings:
    """Right arrow accepts the current suggestion when the cursor is at the end."""
    kb = KeyBindings()

    @Condition
    def suggestion_available() -> bool:
        buf = get_app().current_buffer
        return bool(engine.suggestion) and buf.document.is_cursor_at_the_end

    @kb.add("right", filter=suggestion_available)
    def _accept(event):
        buf = event.current_buffer
        remainder = engine.accept(buf.text, buf.cursor_position)
        if remainder:
            buf.insert_text(remainder)

    return kb
