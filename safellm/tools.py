"""Tools the model may call during a turn."""

import json
import time
from datetime import datetime

from safellm.memory import MemoryLog
from safellm.session_manager import SessionStore


def _function(name: str, description: str, properties: dict | None = None) -> dict:
    """OpenAI function-tool definition with all listed properties required."""
    properties = properties or {}
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": list(properties),
            },
        },
    }


def _string(description: str) -> dict:
    return {"type": "string", "description": description}


TOOL_DEFINITIONS = [
    _function("get-time", "Get the current time"),
    _function(
        "save-memory",
        "Save important information to long-term memory",
        {"memory": _string("The information to remember")},
    ),
    _function("read-memory", "Read all saved long-term memories"),
    _function(
        "delete-memory",
        "Delete a specific memory from long-term storage",
        {"memory": _string("The content of the memory to delete (exact or partial match)")},
    ),
    _function(
        "replace-memory",
        "Replace an existing memory with new content",
        {
            "originalContent": _string(
                "The content of the existing memory to find (exact or partial match)"
            ),
            "newContent": _string("The new content to replace it with"),
        },
    ),
    _function("list-sessions", "List all available past conversation sessions"),
    _function(
        "read-session",
        "Read the content of a past conversation session",
        {"sessionId": _string("The ID of the session to read")},
    ),
    _function(
        "rename-session",
        "Rename a conversation session",
        {
            "sessionId": _string("The ID of the session to rename"),
            "newName": _string("The new name for the session"),
        },
    ),
]


class ToolBox:
    """Dispatches tool calls to the memory log and the session store."""

    def __init__(self, store: SessionStore, memory: MemoryLog):
        self.store = store
        self.memory = memory
        self.handlers = {
            "get-time": self.get_time,
            "save-memory": self.save_memory,
            "read-memory": self.read_memory,
            "delete-memory": self.delete_memory,
            "replace-memory": self.replace_memory,
            "list-sessions": self.list_sessions,
            "read-session": self.read_session,
            "rename-session": self.rename_session,
        }

    def definitions(self) -> list[dict]:
        return TOOL_DEFINITIONS

    def call(self, name: str, arguments: str | None) -> dict:
        """Runs a tool with its JSON-encoded arguments."""
        handler = self.handlers.get(name)
        if handler is None:
            return {"error": f"Unknown tool: {name}"}
        try:
            args = json.loads(arguments) if arguments else {}
        except json.JSONDecodeError:
            return {"error": "Arguments were not valid JSON"}
        if not isinstance(args, dict):
            return {"error": "Arguments must be an object"}
        try:
            return handler(**args)
        except TypeError as e:
            return {"error": f"Bad arguments for {name}: {e}"}

    # <~~TOOLS~~>
    def get_time(self) -> dict:
        return {
            "time": datetime.now().strftime("%X"),
            "timezone": time.strftime("%Z"),
        }

    def save_memory(self, memory: str) -> dict:
        if self.memory.save(memory):
            return {"success": True, "message": "Memory saved."}
        return {"success": False, "message": "Failed to save memory."}

    def read_memory(self) -> dict:
        return {"memories": self.memory.read()}

    def delete_memory(self, memory: str) -> dict:
        if self.memory.delete(memory):
            return {"success": True, "message": "Memory deleted."}
        return {"success": False, "message": "Memory not found."}

    def replace_memory(self, originalContent: str, newContent: str) -> dict:
        if self.memory.replace(originalContent, newContent):
            return {"success": True, "message": "Memory replaced."}
        return {"success": False, "message": "Original memory not found."}

    def list_sessions(self) -> dict:
        return {
            "sessions": [
                {
                    "id": s.id,
                    "created": s.created_at,
                    "messageCount": len(s.messages),
                }
                for s in self.store.list_sessions()
            ]
        }

    def read_session(self, sessionId: str) -> dict:
        # Reading must not switch the active session
        session = self.store.find(sessionId)
        if session is None:
            return {"error": "Session not found"}
        return {"session": session.to_dict()}

    def rename_session(self, sessionId: str, newName: str) -> dict:
        if self.store.rename(sessionId, newName):
            return {"success": True, "message": f"Session renamed to {newName}"}
        return {"success": False, "message": "Failed to rename session"}
