"""The generation client. Talks to any OpenAI-compatible endpoint."""

import json
import logging
from dataclasses import dataclass

from openai import OpenAI

from safellm.config import Config
from safellm.globals import log_exception

# Upper bound on tool-call round trips for a single turn
MAX_TOOL_ROUNDS = 5

# Seconds allowed for the /models connectivity probe
PROBE_TIMEOUT = 5.0


@dataclass
class GenerationResult:
    text: str = ""
    reasoning_text: str = ""


class ChatProvider:
    """Sends a transcript to the model and returns its answer."""

    def __init__(self, config: Config, toolbox=None):
        self.config = config
        self.toolbox = toolbox
        self.client = OpenAI(
            base_url=config.base_url, api_key=config.api_key or "not-needed"
        )

    def check_connection(self):
        """Lists the endpoint's models. Raises if the server can't be reached."""
        self.client.with_options(timeout=PROBE_TIMEOUT).models.list()

    def process_history(self, messages: list[dict]) -> list[dict]:
        """
        Builds the request payload: system prompt first, then the transcript
        with consecutive user entries condensed into one.
        """
        processed: list[dict] = []
        if self.config.system_prompt:
            processed.append({"role": "system", "content": self.config.system_prompt})
        for msg in messages:
            if processed and processed[-1]["role"] == "user" and msg["role"] == "user":
                processed[-1]["content"] += f"\n\n{msg['content']}"
            else:
                processed.append({"role": msg["role"], "content": msg["content"]})
        return processed

    def generate(self, messages: list[dict]) -> GenerationResult:
        """Runs one completion, resolving tool calls along the way."""
        payload = self.process_history(messages)
        use_tools = bool(self.toolbox and self.config.tools_enabled)

        for _ in range(MAX_TOOL_ROUNDS + 1):
            kwargs = {"model": self.config.model_id, "messages": payload}
            if use_tools:
                kwargs["tools"] = self.toolbox.definitions()
            completion = self.client.chat.completions.create(**kwargs)
            message = completion.choices[0].message

            tool_calls = getattr(message, "tool_calls", None)
            if not use_tools or not tool_calls:
                return GenerationResult(
                    text=message.content or "",
                    reasoning_text=self._reasoning(message),
                )

            payload.append(
                {
                    "role": "assistant",
                    "content": message.content or "",
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.function.name,
                                "arguments": call.function.arguments,
                            },
                        }
                        for call in tool_calls
                    ],
                }
            )
            for call in tool_calls:
                payload.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": json.dumps(self._run_tool(call)),
                    }
                )

        logging.error(f"Tool loop exceeded {MAX_TOOL_ROUNDS} rounds")
        return GenerationResult()

    def _run_tool(self, call) -> dict:
        try:
            return self.toolbox.call(call.function.name, call.function.arguments)
        except Exception as e:
            log_exception(e, f"Error in tool call: {call.function.name}")
            return {"error": str(e)}

    @staticmethod
    def _reasoning(message) -> str:
        """Reasoning text, for servers that split it out of the content."""
        return (
            getattr(message, "reasoning_content", None)
            or getattr(message, "reasoning", None)
            or ""
        )
