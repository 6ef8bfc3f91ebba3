"""Command interactivity logic lives here."""

from datetime import datetime

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory
from rich.markup import escape

from safellm.chat import ChatTurnDriver
from safellm.globals import (
    COMMAND_COMPLETER,
    COMPLETER_STYLER,
    CONSOLE,
    PROMPT_PREFIX,
    log_exception,
)
from safellm.session_manager import SessionStore
from safellm.suggestions import (
    SuggestionEngine,
    attach_suggestions,
    suggestion_bindings,
)
from safellm.ui import GlobalPanels

# Signals returned upward to the application loop
QUIT = "quit"
CONFIGURE = "configure"

# How many sessions /history shows
HISTORY_LIMIT = 10


class CLIController:
    """Classifies each line of input and dispatches it"""

    def __init__(
        self,
        store: SessionStore,
        driver: ChatTurnDriver,
        panels: GlobalPanels,
    ):
        self.store = store
        self.driver = driver
        self.panels = panels
        self.transcript: list[dict] = []
        self.engine = SuggestionEngine()
        self.history = InMemoryHistory()
        self.prompt_session: PromptSession | None = None

        # Exact-match commands
        self.commands = {
            "/help": self.show_help,
            "/config": lambda: CONFIGURE,
            "/clear": self.clear_context,
            "/history": self.list_sessions,
            "/exit": lambda: QUIT,
            "/quit": lambda: QUIT,
            "exit": lambda: QUIT,
            "quit": lambda: QUIT,
        }
        # Commands that take an argument after a space
        self.arg_commands = {
            "/load": self.load_session,
            "/rename": self.rename_session,
        }

    # <~~INPUT~~>
    def _build_prompt_session(self) -> PromptSession:
        session = PromptSession(
            completer=COMMAND_COMPLETER,
            complete_while_typing=False,
            style=COMPLETER_STYLER,
            history=self.history,
            key_bindings=suggestion_bindings(self.engine),
        )
        attach_suggestions(session.default_buffer, self.engine)
        return session

    def read_line(self) -> str:
        if self.prompt_session is None:
            self.prompt_session = self._build_prompt_session()
        # Buffer.reset() fires no change event, so the engine is reset here
        self.engine.reset()
        try:
            return self.prompt_session.prompt(PROMPT_PREFIX)
        finally:
            self.engine.reset()

    def run(self) -> str:
        """Reads and dispatches lines until the user quits or reconfigures."""
        while True:
            try:
                line = self.read_line()
            except (KeyboardInterrupt, EOFError):
                return QUIT
            action = self.handle_input(line)
            if action:
                return action

    def handle_input(self, line: str) -> str | None:
        """Dispatches one line. Returns QUIT, CONFIGURE, or None to keep going."""
        text = line.strip()
        if not text:
            return None

        if text in self.commands:
            return self.commands[text]()

        name, _, arg = text.partition(" ")
        if name in self.arg_commands:
            return self.arg_commands[name](arg.strip())

        self.driver.run_turn(self.transcript, text)
        return None

    # <~~COMMANDS~~>
    def show_help(self):
        self.panels.spawn_help_chart()

    def clear_context(self):
        """Drops the in-memory transcript and starts a new session."""
        # The old session stays active if a new one can't be created
        try:
            self.store.create()
        except OSError as e:
            log_exception(e, "Error in clear_context()")
            self.panels.spawn_error_panel("ERROR CREATING SESSION", f"{e}")
            return
        self.transcript.clear()
        CONSOLE.clear()
        CONSOLE.print("[green]\n🧹 Context cleared!\n[/green]")

    def list_sessions(self):
        """Prints the most recent sessions."""
        sessions = self.store.list_sessions()
        if not sessions:
            CONSOLE.print("[dim]No saved sessions found.[/dim]\n")
            return
        CONSOLE.print("[bold yellow]\nPast Sessions:[/bold yellow]")
        for s in sessions[:HISTORY_LIMIT]:
            created = _local_time(s.created_at)
            CONSOLE.print(
                f"[yellow]  • {s.id} ({created} - {len(s.messages)} msgs)[/yellow]",
                highlight=False,
            )
        CONSOLE.print()

    def load_session(self, identifier: str):
        """Replaces the transcript with a stored session's messages."""
        if not identifier:
            CONSOLE.print("[red]Please provide a session id. Usage: /load <id>[/red]")
            return
        session = self.store.load(identifier)
        if session is None:
            CONSOLE.print(f"[red]\n❌ Session not found: {escape(identifier)}\n[/red]")
            return

        self.transcript[:] = session.messages
        CONSOLE.print(f"[green]\n📂 Loaded session: {session.id}\n[/green]")
        last_msgs = self.transcript[-2:]
        if last_msgs:
            CONSOLE.print("[dim]Last messages:[/dim]")
            for m in last_msgs:
                CONSOLE.print(
                    f"  {m.get('role')}: {str(m.get('content', ''))[:50]}...",
                    style="dim",
                    markup=False,
                    highlight=False,
                )

    def rename_session(self, new_name: str):
        """Renames the active session."""
        if not new_name:
            CONSOLE.print(
                "[red]Please provide a new name. Usage: /rename <new-name>[/red]"
            )
            return
        current_id = self.store.current_id
        if not current_id:
            CONSOLE.print("[red]\n❌ No active session to rename.\n[/red]")
            return
        if self.store.rename(current_id, new_name):
            CONSOLE.print(
                f"[green]\n✅ Session renamed to: {self.store.current_id}\n[/green]"
            )
        else:
            CONSOLE.print("[red]\n❌ Failed to rename session.\n[/red]")


def _local_time(stamp: str) -> str:
    """ISO timestamp to local, human-readable time. Unparseable input is echoed."""
    try:
        return datetime.fromisoformat(stamp.replace("Z", "+00:00")).astimezone().strftime(
            "%Y-%m-%d %H:%M:%S"
        )
    except ValueError:
        return stamp
