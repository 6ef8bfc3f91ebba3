"""Guided configuration flow. Runs on first launch and on /config."""

import os
import socket

from keyring.errors import KeyringError
from prompt_toolkit import prompt
from prompt_toolkit.formatted_text import HTML

from safellm.config import Config
from safellm.globals import CONSOLE, log_exception, store_key

# Menu choice -> (provider, default endpoint, default model, port to probe)
PROVIDERS = {
    "1": ("lm-studio", "http://localhost:1234/v1", "mistralai/ministral-3-14b-reasoning", 1234),
    "2": ("ollama", "http://localhost:11434/v1", "llama3", 11434),
    "3": ("custom", "http://localhost:8000/v1", "my-model", 0),
}

LM_STUDIO_PATHS = (
    "/Applications/LM Studio.app",
    os.path.expanduser("~/Applications/LM Studio.app"),
)


def _ask(question: str, default: str = "", is_password: bool = False) -> str:
    """Prompts with an optional default, shown dimmed. Empty input takes the default."""
    suffix = f" ({default})" if default else ""
    answer = prompt(
        HTML("<ansigreen>?</ansigreen> {}<style fg='#808080'>{}</style> ").format(
            question, suffix
        ),
        is_password=is_password,
    )
    return answer.strip() or default


def check_service_running(port: int, host: str = "127.0.0.1", timeout: float = 1.0) -> bool:
    """TCP connect probe, used to tell whether a local server is listening."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def check_lm_studio_installed() -> bool:
    return any(os.path.exists(p) for p in LM_STUDIO_PATHS)


def _report_service(provider: str, port: int):
    """Prints whether the chosen provider is reachable, and waits if it isn't."""
    CONSOLE.print(f"\n[dim]Checking status for {provider}...[/dim]")
    if check_service_running(port):
        name = "LM Studio" if provider == "lm-studio" else "Ollama"
        CONSOLE.print(f"[green]✅ {name} is running.[/green]")
        return

    if provider == "lm-studio":
        if check_lm_studio_installed():
            CONSOLE.print("[yellow]⚠️  LM Studio is installed but not running.[/yellow]")
            CONSOLE.print("Please start the LM Studio server.")
        else:
            CONSOLE.print("[red]❌ LM Studio not detected.[/red]")
    else:
        CONSOLE.print(
            f"[yellow]⚠️  Ollama does not appear to be running on port {port}.[/yellow]"
        )
        CONSOLE.print("Ensure `ollama serve` is running.", markup=False)
    _ask("Press Enter to continue configuration...")


def run_setup_wizard() -> Config:
    """
    Walks the user through provider, endpoint, model and auth settings.

    Declining the wizard returns the defaults without saving them.
    """
    CONSOLE.clear()
    CONSOLE.print("[bold cyan]🧙 SafeLLM Setup Wizard[/bold cyan]")
    CONSOLE.print("[dim]Let's configure your agent.[/dim]\n")

    config = Config()
    start = _ask("No configuration found (or strictly requested). Run setup? (Y/n)", "Y")
    if start.lower() == "n":
        return config

    CONSOLE.print("\n[green]Choose your AI Provider:[/green]")
    CONSOLE.print("1. LM Studio (Default port 1234)")
    CONSOLE.print("2. Ollama    (Default port 11434)")
    CONSOLE.print("3. Custom\n")

    choice = _ask("Select provider (1-3):", "1")
    provider, default_url, default_model, port = PROVIDERS.get(choice, PROVIDERS["1"])

    if port:
        _report_service(provider, port)

    config.provider = provider
    config.base_url = _ask("API Base URL:", default_url)
    config.model_id = _ask("Model ID:", default_model)

    use_auth = _ask("Enforce authentication? (y/N)", "N")
    if use_auth.lower() == "y":
        if provider == "lm-studio":
            CONSOLE.print("\n[yellow]To get your API Token:[/yellow]")
            CONSOLE.print("1. Open LM Studio Developer Page")
            CONSOLE.print("2. Go to Server Settings")
            CONSOLE.print('3. Enable "API Token Authentication"')
            CONSOLE.print("4. Generate and copy the token\n")
        token = _ask("Enter your API Token:", is_password=True)
        if token:
            config.auth = True
            try:
                store_key(token)
            except (KeyringError, ValueError, RuntimeError, OSError) as e:
                log_exception(e, "Error in run_setup_wizard() - keyring")
                CONSOLE.print(
                    f"[red]Could not save to your OS keychain:[/red] {e}\n"
                    "[dim]Using key for this session only.[/dim]"
                )
                config.set_session_key(token)

    config.save()
    CONSOLE.print("\n[green]✅ Configuration saved![/green]\n")
    return config
