"""
Centralized configuration loader and accessors for Hearken.

Loads YAML from `config/config.yaml` (or the path handed to `load()`) and
provides typed getters aligned with the documented schema (assistant.*,
time_range.*, llm.*, stt.*, tts.*, tools.*, turn_taking.*, logging.*).
"""
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .error_handler import ConfigurationError
from .logging_utils import setup_logger

logger = setup_logger("hearken.config")

_CONFIG_PATH = os.path.abspath(os.path.join(os.getcwd(), "config", "config.yaml"))
_CFG: Dict[str, Any] = {}
_LOADED = False

_BOOL_TRUE_VALUES = frozenset({"true", "1", "yes", "y", "on"})
_BOOL_FALSE_VALUES = frozenset({"false", "0", "no", "n", "off"})

_PARAM_TYPES = frozenset({"string", "number", "integer", "boolean", "array", "object"})


def _read(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"{path}: {e}", component="config", operation="read") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{path}: {e}", component="config", operation="parse") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping", component="config",
                                 operation="parse")
    return data


def _load() -> None:
    global _CFG, _LOADED
    if _LOADED:
        return
    _CFG = _read(_CONFIG_PATH) if os.path.exists(_CONFIG_PATH) else {}
    _validate_config(_CFG)
    _LOADED = True


def load(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the configuration strictly: the file must exist and name a wake word.

    Raises ConfigurationError for a missing, unparseable or invalid file.
    """
    global _CONFIG_PATH, _CFG, _LOADED
    if path:
        _CONFIG_PATH = os.path.abspath(path)
    data = _read(_CONFIG_PATH)
    _validate_config(data, require_wake_word=True)
    _CFG = data
    _LOADED = True
    logger.info(f"Loaded configuration from {_CONFIG_PATH}")
    return _CFG


def _validate_config(config: Dict[str, Any], require_wake_word: bool = False) -> None:
    """Validate configuration values and provide helpful error messages"""
    errors = []
    warnings = []

    assistant = config.get("assistant") or {}
    if not isinstance(assistant, dict):
        errors.append("assistant must be a mapping")
        assistant = {}

    wake_word = assistant.get("wake_word")
    if wake_word is None:
        if require_wake_word:
            errors.append("assistant.wake_word is required")
    elif not isinstance(wake_word, str) or not wake_word.strip():
        errors.append("assistant.wake_word must be a non-empty string")

    if "stop_words" in assistant:
        stop_words = assistant["stop_words"]
        if not isinstance(stop_words, list):
            errors.append("assistant.stop_words must be a list")
        elif any(not isinstance(w, str) or not w.strip() for w in stop_words):
            errors.append("assistant.stop_words items must be non-empty strings")

    if "system_prompt" in assistant and not isinstance(assistant["system_prompt"], str):
        errors.append("assistant.system_prompt must be a string")

    time_range = config.get("time_range") or {}
    if isinstance(time_range, dict):
        start = time_range.get("start_hour", 0)
        end = time_range.get("end_hour", 24)
        if not isinstance(start, int) or isinstance(start, bool) or not 0 <= start <= 23:
            errors.append("time_range.start_hour must be an integer between 0 and 23")
        elif not isinstance(end, int) or isinstance(end, bool) or not 1 <= end <= 24:
            errors.append("time_range.end_hour must be an integer between 1 and 24")
        elif start >= end:
            errors.append("time_range.start_hour must be less than time_range.end_hour")
    else:
        errors.append("time_range must be a mapping")

    llm = config.get("llm") or {}
    if isinstance(llm, dict):
        if "max_tool_rounds" in llm:
            rounds = llm["max_tool_rounds"]
            if not isinstance(rounds, int) or isinstance(rounds, bool) or rounds <= 0:
                errors.append("llm.max_tool_rounds must be a positive integer")
        if "timeout_sec" in llm:
            timeout = llm["timeout_sec"]
            if not isinstance(timeout, (int, float)) or timeout <= 0:
                errors.append("llm.timeout_sec must be a positive number")
    else:
        errors.append("llm must be a mapping")

    turn_taking = config.get("turn_taking") or {}
    if isinstance(turn_taking, dict):
        for key in ("chunk_ms", "continuation_chunks", "idle_chunks", "off_hours_sleep_sec"):
            if key in turn_taking:
                val = turn_taking[key]
                if not isinstance(val, (int, float)) or isinstance(val, bool) or val <= 0:
                    errors.append(f"turn_taking.{key} must be a positive number")
        grace = turn_taking.get("continuation_chunks", 3)
        idle = turn_taking.get("idle_chunks", 20)
        if isinstance(grace, int) and isinstance(idle, int) and idle <= grace:
            errors.append("turn_taking.idle_chunks must be greater than turn_taking.continuation_chunks")
    else:
        errors.append("turn_taking must be a mapping")

    for section, label in (("stt", "Vosk model"), ("tts", "Piper voice model")):
        section_config = config.get(section) or {}
        if not isinstance(section_config, dict):
            errors.append(f"{section} must be a mapping")
            continue
        model_path = section_config.get("model_path")
        if model_path is None:
            continue
        if not isinstance(model_path, str):
            errors.append(f"{section}.model_path must be a string")
        elif not os.path.exists(model_path):
            warnings.append(f"{label} not found: {model_path}")

    tools_config = config.get("tools") or {}
    if isinstance(tools_config, dict):
        errors.extend(_validate_tool_definitions(tools_config.get("definitions") or [], warnings))
        if "timeout_sec" in tools_config and tools_config["timeout_sec"] is not None:
            timeout = tools_config["timeout_sec"]
            if not isinstance(timeout, (int, float)) or timeout <= 0:
                errors.append("tools.timeout_sec must be a positive number")
    else:
        errors.append("tools must be a mapping")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
        raise ConfigurationError(error_msg, component="config", operation="validate")

    for warning in warnings:
        logger.warning(f"Config warning: {warning}")


def _validate_tool_definitions(definitions: Any, warnings: List[str]) -> List[str]:
    errors = []
    if not isinstance(definitions, list):
        return ["tools.definitions must be a list"]

    seen = set()
    for idx, tool in enumerate(definitions):
        where = f"tools.definitions[{idx}]"
        if not isinstance(tool, dict):
            errors.append(f"{where} must be a mapping")
            continue
        name = tool.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(f"{where}.name must be a non-empty string")
        elif name in seen:
            errors.append(f"{where}.name '{name}' is defined more than once")
        else:
            seen.add(name)
        if not isinstance(tool.get("command"), str) or not tool["command"].strip():
            errors.append(f"{where}.command must be a non-empty string")
        if not isinstance(tool.get("description", ""), str):
            errors.append(f"{where}.description must be a string")

        params = tool.get("params") or {}
        if not isinstance(params, dict):
            errors.append(f"{where}.params must be a mapping")
            params = {}
        for pname, param in params.items():
            if not isinstance(param, dict) or not isinstance(param.get("type"), str):
                errors.append(f"{where}.params.{pname} must be a mapping with a 'type'")
            elif param["type"] not in _PARAM_TYPES:
                warnings.append(f"{where}.params.{pname} has unusual type '{param['type']}'")

        required = tool.get("required_params") or []
        if not isinstance(required, list):
            errors.append(f"{where}.required_params must be a list")
        else:
            for pname in required:
                if pname not in params:
                    warnings.append(f"{where}.required_params names undeclared param '{pname}'")
    return errors


def get(path: str, default: Any = None) -> Any:
    """Dot-path getter from loaded config.

    Example: get("turn_taking.idle_chunks", 20)
    """
    _load()
    cur: Any = _CFG
    for part in path.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur[part]
        else:
            return default
    return cur


def get_typed(path: str, default: Any, cast_type: type) -> Any:
    """Get a configuration value with type casting and default fallback."""
    val = get(path, default)

    if cast_type is bool:
        if isinstance(val, bool):
            return val
        if isinstance(val, str):
            normalized = val.strip().lower()
            if normalized in _BOOL_TRUE_VALUES:
                return True
            if normalized in _BOOL_FALSE_VALUES:
                return False
            return default
        try:
            return bool(val)
        except (TypeError, ValueError):
            return default

    if isinstance(val, cast_type):
        return val

    try:
        return cast_type(val)
    except (TypeError, ValueError):
        return default


def get_wake_word() -> str:
    return str(get("assistant.wake_word", "")).strip()


def get_stop_words() -> List[str]:
    return [str(w) for w in get("assistant.stop_words", ["stop", "thank you", "enough", "cancel"])]


def get_system_prompt() -> str:
    return str(get("assistant.system_prompt",
                   "You are a voice assistant. Answer briefly and in plain spoken language."))


def get_active_hours() -> Tuple[int, int]:
    """Active window as [start_hour, end_hour) in local time."""
    return (get_typed("time_range.start_hour", 0, int),
            get_typed("time_range.end_hour", 24, int))


def get_llm_model() -> str:
    return str(get("llm.model", "gpt-4o-mini"))


def get_llm_server_url() -> str:
    return str(get("llm.server_url", "https://api.openai.com/v1/chat/completions"))


def get_llm_timeout() -> float:
    return get_typed("llm.timeout_sec", 120.0, float)


def get_llm_max_tool_rounds() -> int:
    return get_typed("llm.max_tool_rounds", 8, int)


def get_llm_api_key() -> Optional[str]:
    """API key for the chat-completion service, read from the environment only."""
    return os.getenv("OPENAI_API_KEY") or None


def get_stt_model_path() -> str:
    return os.path.abspath(str(get("stt.model_path", "models/vosk-model-small-en-us-0.15")))


def get_stt_sample_rate() -> int:
    return get_typed("stt.sample_rate", 16000, int)


def get_tts_model_path() -> str:
    return os.path.abspath(str(get("tts.model_path", "models/piper/en_US-lessac-medium.onnx")))


def get_tool_definitions() -> List[Dict[str, Any]]:
    return list(get("tools.definitions", []) or [])


def get_tools_shell_quote() -> bool:
    """When true, string arguments are shell-quoted before substitution."""
    return get_typed("tools.shell_quote", False, bool)


def get_tools_timeout() -> Optional[float]:
    val = get("tools.timeout_sec")
    if val is None:
        return None
    return get_typed("tools.timeout_sec", None, float)


def get_chunk_ms() -> int:
    return get_typed("turn_taking.chunk_ms", 100, int)


def get_continuation_chunks() -> int:
    return get_typed("turn_taking.continuation_chunks", 3, int)


def get_idle_chunks() -> int:
    return get_typed("turn_taking.idle_chunks", 20, int)


def get_off_hours_sleep() -> float:
    return get_typed("turn_taking.off_hours_sleep_sec", 60.0, float)


def get_log_level() -> str:
    return str(get("logging.level", "INFO")).upper()
