"""
Tool-augmented dialogue with an OpenAI-compatible chat-completion service.

`DialogueLoop.ask()` appends the user's query to the conversation history and
keeps exchanging messages with the service for as long as it answers with tool
calls. Each call is resolved through the injected `execute_tool` callback and
fed back as a `tool` message; the first plain-text answer ends the exchange.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests

from . import config as cfg
from .error_handler import ErrorSeverity, TransportError, handle_error
from .logging_utils import log_with_context, setup_logger

logger = setup_logger("hearken.dialogue")

Message = Dict[str, Any]
ToolExecutor = Callable[[str, Dict[str, Any]], str]

TOO_MANY_TOOL_CALLS = "Sorry, I could not finish that: too many tool calls in a row."


def system_message(content: str) -> Message:
    return {"role": "system", "content": content}


def user_message(content: str) -> Message:
    return {"role": "user", "content": content}


def assistant_message(content: str) -> Message:
    return {"role": "assistant", "content": content}


def initial_history(system_prompt: str) -> List[Message]:
    return [system_message(system_prompt)]


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str = ""

    def parsed_arguments(self) -> Dict[str, Any]:
        """Decoded argument object; anything malformed becomes `{}`."""
        try:
            args = json.loads(self.arguments) if self.arguments else {}
        except (TypeError, ValueError):
            logger.warning(f"Malformed arguments for tool '{self.name}': {self.arguments!r}")
            return {}
        return args if isinstance(args, dict) else {}

    def to_message_part(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class ChatReply:
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


def convert_tools(raw_tools: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Turn `{name, description, inputSchema}` records into function-tool entries."""
    converted = []
    for tool in raw_tools:
        name = tool.get("name")
        if not name:
            continue
        converted.append({
            "type": "function",
            "function": {
                "name": name,
                "description": tool.get("description", ""),
                "parameters": tool.get("inputSchema") or {"type": "object", "properties": {}},
            },
        })
    return converted


def parse_reply(payload: Any) -> ChatReply:
    """Extract text or tool calls from a chat-completion response body."""
    try:
        message = payload["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as e:
        raise TransportError(f"Unexpected response shape: {e}", operation="decode") from e
    if not isinstance(message, dict):
        raise TransportError(f"Unexpected message in response: {message!r}", operation="decode")

    calls = []
    for raw in message.get("tool_calls") or []:
        if not isinstance(raw, dict) or raw.get("type", "function") != "function":
            continue
        function = raw.get("function")
        if not isinstance(function, dict):
            function = {}
        calls.append(ToolCall(
            id=str(raw.get("id", "")),
            name=str(function.get("name", "")),
            arguments=function.get("arguments") or "",
        ))
    return ChatReply(text=message.get("content") or "", tool_calls=calls)


class ChatTransport:
    """Blocking client for a `/v1/chat/completions` endpoint."""

    def __init__(self, server_url: str, api_key: Optional[str] = None, timeout: float = 120.0,
                 session: Optional[requests.Session] = None):
        self.server_url = server_url
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls) -> "ChatTransport":
        return cls(cfg.get_llm_server_url(), api_key=cfg.get_llm_api_key(),
                   timeout=cfg.get_llm_timeout())

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def complete(self, model: str, messages: List[Message],
                 tools: Optional[List[Dict[str, Any]]] = None) -> ChatReply:
        payload: Dict[str, Any] = {"model": model, "messages": messages}
        if tools:
            payload["tools"] = tools
        try:
            body = json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise TransportError(f"Could not build request: {e}", operation="build") from e

        try:
            r = self.session.post(self.server_url, data=body, headers=self._headers(),
                                  timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(str(e), operation="send") from e

        if r.status_code >= 400:
            detail = ""
            try:
                err = r.json().get("error")
                detail = err.get("message", "") if isinstance(err, dict) else str(err or "")
            except (ValueError, AttributeError):
                detail = (r.text or "").strip()
            raise TransportError(f"HTTP {r.status_code}: {detail}".rstrip(": "),
                                 status_code=r.status_code, operation="send")

        try:
            data = r.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON in response: {e}", operation="decode") from e
        return parse_reply(data)


class DialogueLoop:
    """Resolves one user query against the chat-completion service."""

    def __init__(self, transport: ChatTransport, model: str, max_tool_rounds: int = 8):
        self.transport = transport
        self.model = model
        self.max_tool_rounds = max_tool_rounds

    @classmethod
    def from_config(cls, transport: Optional[ChatTransport] = None) -> "DialogueLoop":
        return cls(transport or ChatTransport.from_config(), cfg.get_llm_model(),
                   max_tool_rounds=cfg.get_llm_max_tool_rounds())

    def ask(self, query: str, history: List[Message], tools: List[Dict[str, Any]],
            execute_tool: ToolExecutor) -> str:
        """Return the assistant's final text, recording every message in `history`."""
        history.append(user_message(query))
        function_tools = convert_tools(tools)
        rounds = 0

        while True:
            try:
                reply = self.transport.complete(self.model, list(history), function_tools)
            except TransportError as e:
                handle_error(e, "dialogue", e.operation, ErrorSeverity.HIGH)
                if e.operation == "build":
                    return self._finish(history, f"Error: {e}")
                return self._finish(history, f"Chat service error: {e}")

            if not reply.tool_calls:
                return self._finish(history, reply.text)

            if rounds >= self.max_tool_rounds:
                logger.warning(f"Giving up after {rounds} tool-calling rounds")
                return self._finish(history, TOO_MANY_TOOL_CALLS)
            rounds += 1

            history.append({
                "role": "assistant",
                "content": None,
                "tool_calls": [tc.to_message_part() for tc in reply.tool_calls],
            })
            for tc in reply.tool_calls:
                args = tc.parsed_arguments()
                log_with_context(logger, logging.DEBUG, f"Tool call {tc.name}({args})",
                                 tool=tc.name, call_id=tc.id)
                result = execute_tool(tc.name, args)
                history.append({"role": "tool", "tool_call_id": tc.id, "content": result})

    @staticmethod
    def _finish(history: List[Message], text: str) -> str:
        history.append(assistant_message(text))
        return text
