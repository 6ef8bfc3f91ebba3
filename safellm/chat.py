"""One request/response exchange: persist, generate, render, persist."""

import re

from rich.live import Live

from safellm.globals import CONSOLE, log_exception, spinner_constructor
from safellm.session_manager import SessionStore
from safellm.ui import GlobalPanels

# A <think> block at the very start of a response
LEADING_THINK = re.compile(r"^\s*<think>([\s\S]*?)</think>")
# Any <think> block, for scrubbing history entries
ANY_THINK = re.compile(r"<think>[\s\S]*?</think>")


def _quote_thinking(match: re.Match) -> str:
    """Dedents the thinking block and wraps it as a markdown quote."""
    lines = match.group(1).split("\n")
    indents = [len(line) - len(line.lstrip()) for line in lines if line.strip()]
    min_indent = min(indents) if indents else 0
    excerpt = "\n> ".join(line[min_indent:].rstrip() for line in lines)
    return f"\n> **Thinking Process:**\n> {excerpt}\n\n---\n\n**Response:**\n\n"


def format_thinking(text: str) -> str:
    """Turns a leading <think> block into a quoted aside above the answer."""
    return LEADING_THINK.sub(_quote_thinking, text, count=1)


def strip_thinking(text: str) -> str:
    """Removes every <think> block, leaving only the answer."""
    return ANY_THINK.sub("", text).strip()


class ChatTurnDriver:
    """Drives a single chat turn against the provider."""

    def __init__(self, provider, store: SessionStore, panels: GlobalPanels):
        self.provider = provider
        self.store = store
        self.panels = panels

    def run_turn(self, transcript: list[dict], user_input: str) -> bool:
        """
        Runs one exchange. The user turn is persisted before the provider is
        called, and stays recorded if generation fails.

        Returns True when an assistant turn was recorded.
        """
        transcript.append({"role": "user", "content": user_input})
        self.store.append(transcript)

        try:
            with Live(
                spinner_constructor("Thinking..."),
                console=CONSOLE,
                refresh_per_second=8,
                transient=True,
            ):
                result = self.provider.generate(transcript)
        except Exception as e:
            log_exception(e, "Error in run_turn()")
            self.panels.spawn_error_panel("ERROR GENERATING RESPONSE", f"{e}")
            return False

        response_text = result.text or result.reasoning_text or ""
        if not response_text:
            CONSOLE.print("[yellow]⚠️ Empty response generated.[/yellow]")
            return False

        try:
            self.panels.spawn_response(format_thinking(response_text))
        except Exception as e:
            log_exception(e, "Error in run_turn() - rendering")
            CONSOLE.print(response_text, markup=False, highlight=False)

        history_content = strip_thinking(response_text) or response_text
        transcript.append({"role": "assistant", "content": history_content})
        self.store.append(transcript)
        return True
