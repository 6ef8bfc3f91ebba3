"""
A 'mock and drive' test for app.py.

- Stubs the provider, the wizard and the chat controller
- Drives the application loop through quit, reconfigure and retry paths
- Checks that every pass starts a new session
"""

from unittest.mock import MagicMock, patch

import pytest

from safellm import app
from safellm.cli_controller import CONFIGURE, QUIT
from safellm.config import Config
from safellm.memory import MemoryLog
from safellm.session_manager import SessionStore


@pytest.fixture
def store(tmp_path):
    return SessionStore(str(tmp_path / "sessions"))


@pytest.fixture
def memory(tmp_path):
    return MemoryLog(str(tmp_path / "MEMORY.md"))


@pytest.fixture(autouse=True)
def quiet():
    """Keeps panels and console output out of the test run."""
    with patch("safellm.app.CONSOLE"), patch("safellm.app.GlobalPanels"):
        yield


# 1. Connection check


@patch("safellm.app.ChatProvider")
def test_check_connection_success(mock_provider):
    provider = app.check_connection(Config(), MagicMock())
    assert provider is mock_provider.return_value
    mock_provider.return_value.check_connection.assert_called_once()


@patch("safellm.app.prompt", side_effect=["r", "q"])
@patch("safellm.app.ChatProvider")
def test_check_connection_retry_then_quit(mock_provider, mock_prompt):
    mock_provider.return_value.check_connection.side_effect = ConnectionError("refused")

    assert app.check_connection(Config(), MagicMock()) is None
    assert mock_provider.return_value.check_connection.call_count == 2


@patch("safellm.app.run_setup_wizard")
@patch("safellm.app.prompt", return_value="c")
@patch("safellm.app.ChatProvider")
def test_check_connection_change_config(mock_provider, mock_prompt, mock_wizard):
    """Choosing [C] reruns the wizard and probes with the new settings."""
    new_config = Config()
    new_config.base_url = "http://localhost:11434/v1"
    mock_wizard.return_value = new_config
    mock_provider.return_value.check_connection.side_effect = [
        ConnectionError("refused"),
        None,
    ]
    config = Config()

    assert app.check_connection(config, MagicMock()) is not None
    assert config.base_url == "http://localhost:11434/v1"


# 2. Application loop


@patch("safellm.app.CLIController")
@patch("safellm.app.ChatProvider")
def test_run_quit(mock_provider, mock_controller, store, memory):
    mock_controller.return_value.run.return_value = QUIT

    app.run(Config(), store, memory)

    assert len(store.list_sessions()) == 1
    mock_controller.return_value.run.assert_called_once()


@patch("safellm.app.run_setup_wizard")
@patch("safellm.app.CLIController")
@patch("safellm.app.ChatProvider")
def test_run_reconfigure_starts_new_session(
    mock_provider, mock_controller, mock_wizard, store, memory
):
    mock_controller.return_value.run.side_effect = [CONFIGURE, QUIT]
    mock_wizard.return_value = Config()

    app.run(Config(), store, memory)

    mock_wizard.assert_called_once()
    assert len(store.list_sessions()) == 2


@patch("safellm.app.prompt", return_value="q")
@patch("safellm.app.CLIController")
@patch("safellm.app.ChatProvider")
def test_run_exits_when_connection_abandoned(
    mock_provider, mock_controller, mock_prompt, store, memory
):
    mock_provider.return_value.check_connection.side_effect = ConnectionError("refused")

    app.run(Config(), store, memory)

    mock_controller.assert_not_called()


# 3. Entry point


@patch("safellm.app.farewell")
@patch("safellm.app.run")
@patch("safellm.app.ensure_config")
@patch("safellm.app.setup_keyring_backend")
@patch("safellm.app.init_logger")
def test_main_happy_path(mock_logger, mock_keyring, mock_config, mock_run, mock_farewell):
    app.main()

    mock_logger.assert_called_once()
    mock_run.assert_called_once()
    assert mock_run.call_args.args[0] is mock_config.return_value
    mock_farewell.assert_called_once()


@patch("safellm.app.farewell")
@patch("safellm.app.run", side_effect=KeyboardInterrupt)
@patch("safellm.app.ensure_config")
@patch("safellm.app.setup_keyring_backend")
@patch("safellm.app.init_logger")
def test_main_ctrl_c_exits_cleanly(mock_logger, mock_keyring, mock_config, mock_run, mock_farewell):
    app.main()
    mock_farewell.assert_called_once()


@patch("safellm.app.log_exception")
@patch("safellm.app.run", side_effect=RuntimeError("boom"))
@patch("safellm.app.ensure_config")
@patch("safellm.app.setup_keyring_backend")
@patch("safellm.app.init_logger")
def test_main_critical_error(mock_logger, mock_keyring, mock_config, mock_run, mock_log):
    with pytest.raises(SystemExit) as exc:
        app.main()

    assert exc.value.code == 1
    mock_log.assert_called_once()
