"""Stream configuration loading with layered precedence.

Configuration precedence (highest wins):
1. Environment variables (AGENT_STREAM_*), read from the workspace .env
   file first, then the process environment
2. Project config (<workspace>/.agent_stream/stream.json)
3. User config (~/.agent_stream/stream.json)
4. Built-in defaults

Usage:
    from agent_stream.config import load_stream_config

    config = load_stream_config(workspace_path=Path.cwd())
    controller = StreamController(renderer, state, session, config=config)

Environment Variables:
    AGENT_STREAM_AUTO_SCROLL: Follow new content (default: true)
    AGENT_STREAM_SHOW_TOOL_USE: Render tool calls (default: true)
    AGENT_STREAM_INDICATOR_ENABLED: Show the thinking indicator (default: true)
    AGENT_STREAM_INDICATOR_DELAY: Debounce before showing, seconds (default: 0.4)
    AGENT_STREAM_INDICATOR_INTERVAL: Readout refresh, seconds (default: 1.0)
    AGENT_STREAM_BASH_LABEL_MAX: Bash command length in labels (default: 40)
    AGENT_STREAM_SKIP_BLOCKED_TOOLS: Comma-separated tools exempt from blocked
        detection (default: AskUserQuestion,ExitPlanMode)
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, get_type_hints

from dotenv import dotenv_values

from .indicator import FLAVOR_TEXTS, THINKING_INDICATOR_DELAY, TIMER_INTERVAL
from .tools import BASH_LABEL_MAX, SKIP_BLOCKED_DETECTION_TOOLS

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".agent_stream"
CONFIG_FILE_NAME = "stream.json"
ENV_PREFIX = "AGENT_STREAM_"


def _parse_bool(value: str) -> bool:
    """Parse boolean from string."""
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_value(value: str, target_type: Type) -> Any:
    """Parse environment variable value to target type."""
    args = getattr(target_type, '__args__', ())
    if args and type(None) in args:
        inner_types = [a for a in args if a is not type(None)]
        if inner_types:
            target_type = inner_types[0]

    if target_type == bool:
        return _parse_bool(value)
    elif target_type == int:
        return int(value)
    elif target_type == float:
        return float(value)
    elif getattr(target_type, '__origin__', None) in (list, List):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


@dataclass
class IndicatorConfig:
    """Thinking indicator timing.

    Attributes:
        enabled: Whether the indicator is shown at all.
        delay: Debounce before the indicator appears, in seconds.
        interval: Elapsed-time readout refresh period, in seconds.
        flavor_texts: Labels picked at random for each indicator.
    """
    enabled: bool = True
    delay: float = THINKING_INDICATOR_DELAY
    interval: float = TIMER_INTERVAL
    flavor_texts: List[str] = field(default_factory=lambda: list(FLAVOR_TEXTS))

    def __post_init__(self):
        """Validate configuration values."""
        if self.delay < 0:
            raise ValueError("delay must be >= 0")
        if self.interval < 0.1:
            raise ValueError("interval must be at least 0.1 seconds")
        if not isinstance(self.flavor_texts, list) or not self.flavor_texts:
            raise ValueError("flavor_texts must be a non-empty list")


@dataclass
class ToolDisplayConfig:
    """Tool call presentation.

    Attributes:
        skip_blocked_detection: Tool names whose results are never
            auto-flagged as blocked.
        bash_label_max: Bash command length shown in labels.
    """
    skip_blocked_detection: List[str] = field(
        default_factory=lambda: sorted(SKIP_BLOCKED_DETECTION_TOOLS)
    )
    bash_label_max: int = BASH_LABEL_MAX

    def __post_init__(self):
        """Validate configuration values."""
        if not isinstance(self.skip_blocked_detection, list):
            raise ValueError("skip_blocked_detection must be a list")
        if self.bash_label_max < 1:
            raise ValueError("bash_label_max must be at least 1")


@dataclass
class StreamConfig:
    """Root stream configuration.

    Attributes:
        indicator: Thinking indicator settings.
        tools: Tool call presentation settings.
        enable_auto_scroll: Scroll to new content while streaming.
        show_tool_use: Render tool calls (they are recorded either way).
    """
    indicator: IndicatorConfig = field(default_factory=IndicatorConfig)
    tools: ToolDisplayConfig = field(default_factory=ToolDisplayConfig)
    enable_auto_scroll: bool = True
    show_tool_use: bool = True


_SECTIONS: Dict[str, Type] = {
    "indicator": IndicatorConfig,
    "tools": ToolDisplayConfig,
}

# Maps "section.field" (or top-level "field") paths to environment variables
ENV_VAR_MAPPING: Dict[str, str] = {
    "enable_auto_scroll": "AGENT_STREAM_AUTO_SCROLL",
    "show_tool_use": "AGENT_STREAM_SHOW_TOOL_USE",
    "indicator.enabled": "AGENT_STREAM_INDICATOR_ENABLED",
    "indicator.delay": "AGENT_STREAM_INDICATOR_DELAY",
    "indicator.interval": "AGENT_STREAM_INDICATOR_INTERVAL",
    "tools.bash_label_max": "AGENT_STREAM_BASH_LABEL_MAX",
    "tools.skip_blocked_detection": "AGENT_STREAM_SKIP_BLOCKED_TOOLS",
}


def _user_config_path() -> Path:
    return Path.home() / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def _find_config_files(workspace_path: Optional[Path] = None) -> List[Path]:
    """Find configuration files in order of precedence (lowest first)."""
    files = []

    user_config = _user_config_path()
    if user_config.exists():
        files.append(user_config)

    if workspace_path:
        project_config = Path(workspace_path) / CONFIG_DIR_NAME / CONFIG_FILE_NAME
        if project_config.exists():
            files.append(project_config)

    return files


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base, returning new dict.

    Lists and other types are replaced, not merged.
    """
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _get_field_type(dataclass_type: Type, field_name: str) -> Type:
    try:
        hints = get_type_hints(dataclass_type)
        return hints.get(field_name, str)
    except Exception:
        return str


def _apply_env_overrides(
    config_dict: Dict[str, Any],
    env_file_values: Optional[Dict[str, Optional[str]]] = None,
) -> Dict[str, Any]:
    """Apply environment variable overrides to config dict.

    Values from the workspace .env file take precedence over the process
    environment, which is left untouched.
    """
    file_env = env_file_values or {}
    result = _deep_merge({}, config_dict)

    for path, env_var in ENV_VAR_MAPPING.items():
        env_value = file_env.get(env_var) or os.environ.get(env_var)
        if env_value is None:
            continue

        parts = path.split(".")
        current = result
        owner: Type = StreamConfig
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
            owner = _SECTIONS.get(part, owner)

        target_type = _get_field_type(owner, parts[-1])

        try:
            current[parts[-1]] = _parse_env_value(env_value, target_type)
            logger.debug(f"Applied env override: {env_var}={env_value}")
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid value for {env_var}: {env_value} ({e})")

    return result


def _dict_to_section(section: str, data: Any) -> Any:
    """Convert one config section to its dataclass, falling back to defaults."""
    section_type = _SECTIONS[section]
    if not isinstance(data, dict):
        logger.warning(f"Invalid '{section}' config (expected dict), using defaults")
        return section_type()

    valid_fields = {f.name for f in fields(section_type)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}

    unknown = {k for k in data.keys() if not k.startswith("_")} - valid_fields
    if unknown:
        logger.warning(f"Unknown {section} config keys (ignored): {unknown}")

    try:
        return section_type(**filtered)
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid {section} config values, using defaults: {e}")
        return section_type()


def _dict_to_config(data: Dict[str, Any]) -> StreamConfig:
    """Convert dict to StreamConfig dataclass."""
    kwargs: Dict[str, Any] = {}
    for section in _SECTIONS:
        kwargs[section] = _dict_to_section(section, data.get(section, {}))

    for flag in ("enable_auto_scroll", "show_tool_use"):
        if flag not in data:
            continue
        value = data[flag]
        if isinstance(value, bool):
            kwargs[flag] = value
        else:
            logger.warning(f"Invalid value for {flag} (expected bool): {value!r}")

    known = set(_SECTIONS) | {"enable_auto_scroll", "show_tool_use"}
    unknown = {k for k in data.keys() if not k.startswith("_")} - known
    if unknown:
        logger.warning(f"Unknown stream config keys (ignored): {unknown}")

    return StreamConfig(**kwargs)


def _load_env_file(env_file: str, workspace_path: Optional[Path] = None) -> Dict[str, Optional[str]]:
    """Read AGENT_STREAM_* values from a .env file without modifying os.environ."""
    env_path = Path(env_file)
    if not env_path.is_absolute() and workspace_path:
        env_path = Path(workspace_path) / env_path
    if not env_path.exists():
        return {}
    try:
        values = dotenv_values(env_path)
    except OSError as e:
        logger.warning(f"Failed to read {env_path}: {e}")
        return {}
    return {k: v for k, v in values.items() if k.startswith(ENV_PREFIX)}


def load_stream_config(
    workspace_path: Optional[Path] = None,
    env_file: str = ".env",
) -> StreamConfig:
    """Load stream configuration with layered precedence.

    Args:
        workspace_path: Path to project workspace for project-level config.
            If None, only user config and environment variables are used.
        env_file: .env file with AGENT_STREAM_* overrides; relative paths
            resolve against workspace_path.

    Returns:
        Merged StreamConfig instance.
    """
    merged: Dict[str, Any] = {}

    for config_file in _find_config_files(workspace_path):
        try:
            with open(config_file) as f:
                file_config = json.load(f)

            if not isinstance(file_config, dict):
                logger.warning(f"Invalid config format in {config_file} (expected object)")
                continue

            merged = _deep_merge(merged, file_config)
            logger.debug(f"Loaded config from {config_file}")

        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in {config_file}: {e}")
        except PermissionError:
            logger.warning(f"Permission denied reading {config_file}")
        except OSError as e:
            logger.warning(f"Failed to load {config_file}: {e}")

    merged = _apply_env_overrides(merged, _load_env_file(env_file, workspace_path))

    return _dict_to_config(merged)


def generate_example_config() -> str:
    """Generate an example stream.json configuration file."""
    defaults = StreamConfig()
    example = {
        "_comment": "agent_stream configuration",
        "enable_auto_scroll": defaults.enable_auto_scroll,
        "show_tool_use": defaults.show_tool_use,
        "indicator": {
            "enabled": defaults.indicator.enabled,
            "delay": defaults.indicator.delay,
            "interval": defaults.indicator.interval,
            "flavor_texts": defaults.indicator.flavor_texts,
        },
        "tools": {
            "skip_blocked_detection": defaults.tools.skip_blocked_detection,
            "bash_label_max": defaults.tools.bash_label_max,
        },
    }
    return json.dumps(example, indent=2)


def get_config_paths(workspace_path: Optional[Path] = None) -> Dict[str, Path]:
    """Get the paths where config files are searched."""
    paths = {"user": _user_config_path()}
    if workspace_path:
        paths["project"] = Path(workspace_path) / CONFIG_DIR_NAME / CONFIG_FILE_NAME
    return paths


__all__ = [
    "ENV_VAR_MAPPING",
    "IndicatorConfig",
    "StreamConfig",
    "ToolDisplayConfig",
    "generate_example_config",
    "get_config_paths",
    "load_stream_config",
]
