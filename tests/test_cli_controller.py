"""
Command router tests.

The chat driver and panels are mocks; the session store is real and lives in
tmp_path. Terminal output goes through the shared rich console.
"""

from unittest.mock import MagicMock, patch

import pytest

from safellm.cli_controller import CONFIGURE, QUIT, CLIController
from safellm.session_manager import SessionStore


@pytest.fixture
def store(tmp_path):
    store = SessionStore(str(tmp_path / "sessions"))
    store.create()
    return store


@pytest.fixture
def controller(store):
    return CLIController(store, MagicMock(), MagicMock())


# 1. Classification


@pytest.mark.parametrize("line", ["/exit", "/quit", "exit", "quit", "  quit  "])
def test_quit_commands(controller, line):
    assert controller.handle_input(line) == QUIT


def test_config_signals_reconfigure(controller):
    assert controller.handle_input("/config") == CONFIGURE


@pytest.mark.parametrize("line", ["", "   ", "\t"])
def test_empty_input_does_nothing(controller, line):
    assert controller.handle_input(line) is None
    controller.driver.run_turn.assert_not_called()


@pytest.mark.parametrize("line", ["hello", "/unknown", "/EXIT", "Quit", "/help me"])
def test_everything_else_is_chat(controller, line):
    assert controller.handle_input(line) is None
    controller.driver.run_turn.assert_called_once_with(controller.transcript, line)


def test_chat_input_is_trimmed(controller):
    controller.handle_input("  hi there  ")
    controller.driver.run_turn.assert_called_once_with(controller.transcript, "hi there")


def test_help_shows_chart(controller):
    assert controller.handle_input("/help") is None
    controller.panels.spawn_help_chart.assert_called_once()


# 2. Session commands


def test_clear_starts_new_session(controller, store):
    old_id = store.current_id
    controller.transcript.extend([{"role": "user", "content": "hi"}])

    assert controller.handle_input("/clear") is None

    assert controller.transcript == []
    assert store.current_id != old_id
    assert store.find(store.current_id).messages == []


def test_history_lists_without_mutation(controller, store):
    current = store.current_id
    with patch("safellm.cli_controller.CONSOLE") as console:
        controller.handle_input("/history")
    printed = " ".join(str(c.args[0]) for c in console.print.call_args_list if c.args)
    assert current in printed
    assert store.current_id == current


def test_history_caps_at_ten(controller, store):
    for _ in range(12):
        store.create()
    with patch("safellm.cli_controller.CONSOLE") as console:
        controller.handle_input("/history")
    bullets = [
        c for c in console.print.call_args_list if c.args and "•" in str(c.args[0])
    ]
    assert len(bullets) == 10


def test_load_replaces_transcript(controller, store):
    messages = [
        {"role": "user", "content": "old question"},
        {"role": "assistant", "content": "old answer"},
    ]
    store.append(messages)
    saved_id = store.current_id
    store.create()
    controller.transcript.append({"role": "user", "content": "current"})

    controller.handle_input(f"/load {saved_id}")

    assert controller.transcript == messages
    assert store.current_id == saved_id


def test_load_missing_leaves_state(controller, store):
    """/load of an unknown id changes neither the transcript nor the pointer."""
    controller.transcript.append({"role": "user", "content": "keep me"})
    current = store.current_id

    with patch("safellm.cli_controller.CONSOLE") as console:
        controller.handle_input("/load nonexistent-id")

    assert controller.transcript == [{"role": "user", "content": "keep me"}]
    assert store.current_id == current
    assert "not found" in str(console.print.call_args_list[-1].args[0])


def test_load_without_argument_shows_usage(controller):
    with patch("safellm.cli_controller.CONSOLE") as console:
        assert controller.handle_input("/load") is None
    assert "Usage" in str(console.print.call_args.args[0])
    controller.driver.run_turn.assert_not_called()


def test_rename_active_session(controller, store):
    controller.handle_input("/rename Trip Planning")
    assert store.current_id == "Trip-Planning"
    assert store.find("Trip-Planning") is not None


def test_rename_without_active_session(tmp_path):
    store = SessionStore(str(tmp_path / "sessions"))
    controller = CLIController(store, MagicMock(), MagicMock())
    with patch("safellm.cli_controller.CONSOLE") as console:
        controller.handle_input("/rename anything")
    assert "No active session" in str(console.print.call_args.args[0])


def test_rename_failure_is_reported(controller, store):
    with patch.object(store, "rename", return_value=False):
        with patch("safellm.cli_controller.CONSOLE") as console:
            controller.handle_input("/rename whatever")
    assert "Failed to rename" in str(console.print.call_args.args[0])


def test_chat_after_load_appends_to_loaded_session(store):
    """Turns after /load land in the loaded session's file."""
    store.append([{"role": "user", "content": "a"}])
    saved_id = store.current_id
    store.create()

    driver = MagicMock()

    def _turn(transcript, text):
        transcript.append({"role": "user", "content": text})
        store.append(transcript)

    driver.run_turn.side_effect = _turn
    controller = CLIController(store, driver, MagicMock())
    controller.handle_input(f"/load {saved_id}")
    controller.handle_input("b")

    assert [m["content"] for m in store.find(saved_id).messages] == ["a", "b"]


# 3. The read loop


@patch("safellm.cli_controller.PromptSession")
def test_run_returns_action(mock_session, controller):
    mock_session.return_value.prompt.side_effect = ["", "hello", "/config"]
    assert controller.run() == CONFIGURE
    controller.driver.run_turn.assert_called_once()


@patch("safellm.cli_controller.PromptSession")
def test_run_ctrl_d_quits(mock_session, controller):
    mock_session.return_value.prompt.side_effect = EOFError
    assert controller.run() == QUIT


@patch("safellm.cli_controller.PromptSession")
def test_run_cancels_pending_suggestion(mock_session, controller):
    mock_session.return_value.prompt.side_effect = ["/quit"]
    controller.engine = MagicMock()
    controller.run()
    assert controller.engine.reset.call_count == 2


@patch("safellm.cli_controller.PromptSession")
def test_each_prompt_starts_with_fresh_suggestions(mock_session, controller):
    """A root reveal on one prompt does not carry into the next."""
    controller.engine._root_revealed = True
    controller.engine.suggestion = "help"
    mock_session.return_value.prompt.side_effect = ["hello", "/quit"]

    controller.run()

    assert controller.engine.suggestion == ""
    assert controller.engine._root_revealed is False
