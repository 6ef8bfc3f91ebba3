"""Global functions and variables, used across various modules."""

import getpass
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

import keyring
from keyring import get_password, set_password
from keyring.backends import null
from platformdirs import user_data_dir
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.styles import Style
from rich.console import Console
from rich.spinner import Spinner

# Default directories and system details
APP_DIR = user_data_dir("SafeLLM")
CONFIG_DIR = os.path.join(APP_DIR, "config")
SESSIONS_DIR = os.path.join(APP_DIR, "sessions")
LOG_DIR = os.path.join(APP_DIR, "logs")
CONFIG_FILE = os.path.join(CONFIG_DIR, "settings.json")
MEMORY_FILE = os.path.join(APP_DIR, "MEMORY.md")
USER_NAME = getpass.getuser()

# The sessions directory is created on demand by the SessionStore
os.makedirs(CONFIG_DIR, exist_ok=True)
os.makedirs(LOG_DIR, exist_ok=True)

# Keyring service name for the bearer token
KEYRING_SERVICE = "SafeLLMAPI"

# Terminal integration
CONSOLE = Console()

# Main prompt prefix
PROMPT_PREFIX = HTML("\n<ansigreen><b>&gt; </b></ansigreen>")

# Dark style for all prompt_toolkit completers, plus ghost text
COMPLETER_STYLER = Style.from_dict(
    {
        # Completions
        "completion-menu.completion": "bg:#202020 #ffffff",
        "completion-menu.completion.current": "bg:#024a1a #000000",
        # Ghost text
        "auto-suggestion": "#666666",
    }
)

# Command prefix character and the canonical command list.
# Order matters: the first entry is what a bare "/" reveals.
COMMAND_PREFIX = "/"
COMMANDS = [
    "/help",
    "/config",
    "/clear",
    "/history",
    "/load ",
    "/rename ",
    "/exit",
    "/quit",
]

# Tab completer for the root prompt
COMMAND_COMPLETER = WordCompleter(
    [c.strip() for c in COMMANDS],
    WORD=True,
)


def init_logger():
    """Initializes the logging system."""
    date_str = datetime.now().strftime("%Y%m%d")
    # Output example: safellm_20251109.log
    log_path = os.path.join(LOG_DIR, f"safellm_{date_str}.log")
    # Max of 3 backups, max size of 1MB
    handler = RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    level = os.getenv("SAFELLM_LOG_LEVEL", "ERROR").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.ERROR),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[handler],
    )


def log_exception(e: Exception, context: str = ""):
    """Creates a full formatted traceback string and writes it to a log file"""
    import traceback

    # Format the traceback (exception class, exception instance, traceback object)
    tb = "".join(traceback.format_exception(type(e), e, e.__traceback__))
    msg = f"{context}\n{tb}" if context else tb
    logging.error(msg)


def setup_keyring_backend():
    """Safely detects a keyring backend."""
    try:
        keyring.get_keyring()
    except Exception as e:
        keyring.set_keyring(null.Keyring())
        logging.error(
            f"Keyring backend failed. Falling back to NullBackend. Error: {e}"
        )


def retrieve_key() -> str:
    """
    Attempts to retrieve a stored API key.\n
    Prio: SAFELLM_API_KEY env variable -> OS keyring entry -> empty string
    """
    api_key = os.getenv("SAFELLM_API_KEY") or ""
    if not api_key:
        try:
            api_key = get_password(KEYRING_SERVICE, USER_NAME) or ""
        except Exception as e:
            log_exception(e, "Error in retrieve_key()")
    return api_key


def store_key(api_key: str):
    """Stores an API key in the OS keyring. Raises KeyringError on failure."""
    set_password(KEYRING_SERVICE, USER_NAME, api_key)


def spinner_constructor(content: str) -> Spinner:
    return Spinner(
        "dots",
        text=f"[dim]{content}[/dim]",
    )
