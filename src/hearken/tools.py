"""
Configured shell-command tools exposed to the chat-completion service.

Each tool is a command template with `{{param}}` placeholders. The dispatcher
substitutes the arguments the model supplied, runs the command through `sh -c`
and hands back whatever the command printed. Failures are reported as text so
the model can react to them; nothing here raises into the dialogue loop.
"""
from __future__ import annotations

import json
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import config as cfg
from .logging_utils import setup_logger

logger = setup_logger("hearken.tools")

TOOL_NOT_FOUND = "Tool '{name}' not found"


@dataclass(frozen=True)
class ParamDefinition:
    type: str
    description: str = ""


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    command: str
    params: Dict[str, ParamDefinition] = field(default_factory=dict)
    required_params: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolDefinition":
        params = {
            str(name): ParamDefinition(type=str(p.get("type", "string")),
                                       description=str(p.get("description", "")))
            for name, p in (data.get("params") or {}).items()
        }
        return cls(
            name=str(data["name"]),
            description=str(data.get("description", "")),
            command=str(data["command"]),
            params=params,
            required_params=[str(p) for p in (data.get("required_params") or [])],
        )

    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                name: {"type": p.type, "description": p.description}
                for name, p in self.params.items()
            },
            "required": list(self.required_params),
        }


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class ToolDispatcher:
    """Resolves tool calls by name against the statically configured definitions."""

    def __init__(self, tools: List[ToolDefinition], shell_quote: bool = False,
                 timeout: Optional[float] = None):
        self._tools = list(tools)
        self.shell_quote = shell_quote
        self.timeout = timeout
        logger.info(f"Loaded {len(self._tools)} tools")
        for tool in self._tools:
            logger.info(f"  - {tool.name}")

    @classmethod
    def from_config(cls) -> "ToolDispatcher":
        tools = [ToolDefinition.from_dict(d) for d in cfg.get_tool_definitions()]
        return cls(tools, shell_quote=cfg.get_tools_shell_quote(), timeout=cfg.get_tools_timeout())

    @property
    def tools(self) -> List[ToolDefinition]:
        return list(self._tools)

    def schema(self) -> List[Dict[str, Any]]:
        """Tool definitions as `{name, description, inputSchema}` records."""
        return [
            {"name": t.name, "description": t.description, "inputSchema": t.input_schema()}
            for t in self._tools
        ]

    def find(self, name: str) -> Optional[ToolDefinition]:
        for tool in self._tools:
            if tool.name == name:
                return tool
        return None

    def render(self, tool: ToolDefinition, args: Any) -> str:
        """Substitute `{{key}}` placeholders; unknown placeholders stay as written."""
        command = tool.command
        if isinstance(args, dict):
            for key, value in args.items():
                replacement = _stringify(value)
                if self.shell_quote and isinstance(value, str):
                    replacement = shlex.quote(replacement)
                command = command.replace("{{" + str(key) + "}}", replacement)
        return command

    def call(self, name: str, args: Any) -> str:
        tool = self.find(name)
        if tool is None:
            logger.warning(f"Requested unknown tool '{name}'")
            return TOOL_NOT_FOUND.format(name=name)

        command = self.render(tool, args)
        logger.info(f"[Tool {name}]: {command}")

        try:
            proc = subprocess.run(
                ["sh", "-c", command],
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Tool '{name}' timed out after {self.timeout}s")
            return f"Error: timed out after {self.timeout:g} s"
        except (OSError, ValueError) as e:
            # ValueError: arguments sh cannot receive, such as an embedded NUL
            logger.error(f"Tool '{name}' failed to launch: {e}")
            return f"Launch error: {e}"

        stdout = (proc.stdout or "").strip()
        stderr = (proc.stderr or "").strip()
        if proc.returncode == 0:
            return stdout or "OK"

        logger.warning(f"Tool '{name}' exited with code {proc.returncode}")
        return f"Error (exit code {proc.returncode}): {stderr or stdout}"
