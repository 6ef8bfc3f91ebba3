#!/usr/bin/env python3

# <~~~~~~~~~~~>
#  SAFELLM CLI
# <~~~~~~~~~~~>

import sys

from prompt_toolkit import prompt
from prompt_toolkit.formatted_text import HTML

from safellm.chat import ChatTurnDriver
from safellm.cli_controller import QUIT, CLIController
from safellm.config import Config, ensure_config
from safellm.globals import (
    CONSOLE,
    init_logger,
    log_exception,
    setup_keyring_backend,
)
from safellm.memory import MemoryLog
from safellm.provider import ChatProvider
from safellm.session_manager import SessionStore
from safellm.setup_wizard import run_setup_wizard
from safellm.tools import ToolBox
from safellm.ui import GlobalPanels, UIConstructor

RETRY_PROMPT = HTML(
    "\n<ansiyellow>[R]etry, [C]hange Config, or [Q]uit? </ansiyellow>"
)


def farewell():
    CONSOLE.print("[yellow]Goodbye![/yellow]\n")


def check_connection(config: Config, toolbox: ToolBox) -> ChatProvider | None:
    """
    Probes the endpoint until it answers or the user gives up.

    "c" reruns the wizard and probes again with the new settings. Returns the
    connected provider, or None if the user chose to quit.
    """
    while True:
        provider = ChatProvider(config, toolbox)
        try:
            provider.check_connection()
            CONSOLE.print(f"[green]✅ Connected to {config.provider}[/green]")
            return provider
        except Exception as e:
            log_exception(e, f"Connection check failed - {config.base_url}")
            CONSOLE.print(
                f"[red]❌ Connection failed to {config.base_url}:[/red] {e}",
                highlight=False,
            )

        answer = prompt(RETRY_PROMPT).strip().lower()
        if answer == "q":
            return None
        if answer == "c":
            new_config = run_setup_wizard()
            # Update the shared config object in place
            config.__dict__.update(new_config.__dict__)


def run(config: Config, store: SessionStore, memory: MemoryLog):
    """
    The application loop. Each pass starts a new session, verifies the
    connection, and runs the chat loop until it asks to quit or reconfigure.
    """
    toolbox = ToolBox(store, memory)
    while True:
        store.create()
        CONSOLE.clear()
        ui = UIConstructor(config)
        panels = GlobalPanels(ui)
        panels.spawn_intro_panel()

        provider = check_connection(config, toolbox)
        if provider is None:
            return

        panels.spawn_ready_message()
        driver = ChatTurnDriver(provider, store, panels)
        controller = CLIController(store, driver, panels)
        if controller.run() == QUIT:
            return

        # Reconfigure: a forced wizard run, then a fresh session
        config = run_setup_wizard()


# <~~MAIN FLOW~~>
def main():
    try:
        init_logger()
        setup_keyring_backend()
        config = ensure_config()
        run(config, SessionStore(), MemoryLog())
        farewell()
    except (KeyboardInterrupt, EOFError):
        farewell()
    except Exception as e:
        log_exception(e, "Critical error")
        GlobalPanels(UIConstructor(Config())).spawn_error_panel("CRITICAL ERROR", f"{e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
