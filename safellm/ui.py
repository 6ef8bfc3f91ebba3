"""Builds and spawns UI objects. UIConstructor and GlobalPanels live here."""

import textwrap

from rich import box
from rich.console import Console, ConsoleOptions, RenderResult
from rich.markdown import BlockQuote, Markdown
from rich.panel import Panel
from rich.segment import Segment
from rich.style import Style
from rich.text import Text

from safellm import __version__
from safellm.globals import CONFIG_FILE, CONSOLE, LOG_DIR, MEMORY_FILE, SESSIONS_DIR

THINKING_MARKER = "Thinking Process:"

BANNER = r"""
  /$$$$$$             /$$$$$$          /$$       /$$       /$$      /$$
 /$$__  $$           /$$__  $$        | $$      | $$      | $$$    /$$$
| $$  \__/  /$$$$$$ | $$  \__//$$$$$$ | $$      | $$      | $$$$  /$$$$
|  $$$$$$  |____  $$| $$$$   /$$__  $$| $$      | $$      | $$ $$/$$ $$
 \____  $$  /$$$$$$$| $$_/  | $$$$$$$$| $$      | $$      | $$  $$$| $$
 /$$  \ $$ /$$__  $$| $$    | $$_____/| $$      | $$      | $$\  $ | $$
|  $$$$$$/|  $$$$$$$| $$    |  $$$$$$$| $$$$$$$$| $$$$$$$$| $$ \/  | $$
 \______/  \_______/|__/     \_______/|________/|________/|__/     |__/
"""


class ThinkingBlockQuote(BlockQuote):
    """Block quote that renders a model's thinking aside dimmed and unstyled."""

    def is_thinking(self) -> bool:
        for element in self.elements:
            text = getattr(element, "text", None)
            if isinstance(text, Text) and THINKING_MARKER in text.plain:
                return True
        return False

    def __rich_console__(
        self, console: Console, options: ConsoleOptions
    ) -> RenderResult:
        if not self.is_thinking():
            yield from super().__rich_console__(console, options)
            return
        dim = Style(dim=True)
        render_options = options.update(width=options.max_width - 4)
        lines = console.render_lines(self.elements, render_options)
        new_line = Segment("\n")
        padding = Segment("▌ ", dim)
        for line in lines:
            yield padding
            for segment in line:
                yield Segment(segment.text, dim)
            yield new_line


class ResponseMarkdown(Markdown):
    """Markdown with the thinking-aside block quote."""

    elements = {**Markdown.elements, "blockquote_open": ThinkingBlockQuote}


class UIConstructor:
    """Constructs and returns various UI objects"""

    def __init__(self, config):
        self.config = config

    def response_constructor(self, content: str) -> ResponseMarkdown:
        return ResponseMarkdown(content, code_theme=self.config.rich_code_theme)

    def intro_panel_constructor(self) -> Panel:
        intro_text = Text.assemble(
            ("Provider: ", "bold sandy_brown"),
            (f"{self.config.provider}"),
            ("\nEndpoint: ", "bold sandy_brown"),
            (f"{self.config.base_url}"),
            ("\nModel: ", "bold sandy_brown"),
            (f"{self.config.model_id}"),
        )
        return Panel(
            intro_text,
            title=Text(f"SafeLLM CLI {__version__}", "bold green"),
            title_align="left",
            border_style="cyan",
            box=box.HORIZONTALS,
            padding=(0, 0),
        )

    def error_panel_constructor(self, error: str, exception: str) -> Panel:
        return Panel(
            exception,
            title=Text(f"❌ {error}", style="bold red"),
            title_align="left",
            border_style="red",
            expand=False,
        )

    def help_chart_constructor(self) -> Markdown:
        return Markdown(
            textwrap.dedent(f"""
            | **Commands** | *Available commands* |
            | --- | ----------- |
            | `/help` | Show this help message. |
            | `/config` | Run the setup wizard again and start a fresh session. |
            | `/clear` | Clear conversation context and start a new session. |
            | `/history` | List the 10 most recent sessions. |
            | `/load <id>` | Load a past session. |
            | `/rename <name>` | Rename the current session. |
            | `/exit` or `/quit` | Exit the agent. |
            | | |
            | `→` | Accept the dimmed command suggestion. |
            | `Tab` | Complete a command. |

            - Your configuration file is located at: `{CONFIG_FILE}`
            - Your session files are located at:     `{SESSIONS_DIR}`
            - Your long-term memory is located at:   `{MEMORY_FILE}`
            - Your error logs are located at:        `{LOG_DIR}`
            """)
        )


class GlobalPanels:
    """Global panel spawner"""

    def __init__(self, ui: UIConstructor):
        self.ui: UIConstructor = ui

    def spawn_intro_panel(self):
        """Banner and connection details, printed at the top of each session."""
        CONSOLE.print(Text(BANNER, style="bold cyan"))
        CONSOLE.print(self.ui.intro_panel_constructor())
        CONSOLE.print()

    def spawn_ready_message(self):
        CONSOLE.print(
            '\n[bold cyan]🤖 Agent Ready! Type "exit", "quit", or "/config" '
            "to configure a new connection.[/bold cyan]"
        )

    def spawn_help_chart(self):
        CONSOLE.print(self.ui.help_chart_constructor())
        CONSOLE.print()

    def spawn_error_panel(self, error: str, exception: str):
        """Error panel template, used by the router, the chat driver and main()"""
        CONSOLE.print(self.ui.error_panel_constructor(error, exception))
        CONSOLE.print()

    def spawn_response(self, content: str):
        """Prints a rendered answer framed by rules sized to the terminal."""
        rendered = self.ui.response_constructor(content)
        CONSOLE.rule(style="dim")
        CONSOLE.print(rendered)
        CONSOLE.rule(style="dim")
