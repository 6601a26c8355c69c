"""Tool-name knowledge used by the stream controller.

Covers which tools spawn or query nested agents, which tools render as
write/edit diffs, the blocked-result heuristic, display labels, and the
side-channel captures (plan file path, todo list) taken from tool input.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from .models import TodoItem

# Tool names
TOOL_TASK = "Task"
TOOL_AGENT_OUTPUT = "TaskOutput"
TOOL_TODO_WRITE = "TodoWrite"
TOOL_WRITE = "Write"
TOOL_EDIT = "Edit"
TOOL_MULTI_EDIT = "MultiEdit"
TOOL_NOTEBOOK_EDIT = "NotebookEdit"
TOOL_READ = "Read"
TOOL_BASH = "Bash"
TOOL_GLOB = "Glob"
TOOL_GREP = "Grep"
TOOL_LS = "LS"
TOOL_ASK_USER_QUESTION = "AskUserQuestion"
TOOL_EXIT_PLAN_MODE = "ExitPlanMode"

WRITE_EDIT_TOOLS = frozenset({TOOL_WRITE, TOOL_EDIT, TOOL_MULTI_EDIT, TOOL_NOTEBOOK_EDIT})

# Tools whose results are user decisions; never auto-flagged as blocked.
SKIP_BLOCKED_DETECTION_TOOLS = frozenset({TOOL_ASK_USER_QUESTION, TOOL_EXIT_PLAN_MODE})

TODO_STATUSES = ("pending", "in_progress", "completed")

# Substrings that mark a tool result as a denial regardless of the error flag.
BLOCKED_MARKERS = (
    "blocked by blocklist",
    "blocked by security policy",
    "blocked by user",
    "user denied",
    "access denied",
    "permission denied by user",
    "outside the vault",
    "outside of the vault",
    "not allowed by the blocklist",
)

PLAN_DIR_PATTERN = re.compile(r"[\\/]\.claude[\\/]plans[\\/]")

BASH_LABEL_MAX = 40


def is_write_edit_tool(name: str) -> bool:
    """True for tools rendered with the diff-aware renderer."""
    return name in WRITE_EDIT_TOOLS


def is_subagent_tool(name: str) -> bool:
    return name == TOOL_TASK


def is_agent_output_tool(name: str) -> bool:
    return name == TOOL_AGENT_OUTPUT


def skips_blocked_detection(name: str, exempt: Optional[Iterable[str]] = None) -> bool:
    """True if results of this tool are never auto-flagged as blocked.

    Args:
        name: Tool name.
        exempt: Override for the exemption list; defaults to
            SKIP_BLOCKED_DETECTION_TOOLS.
    """
    names = SKIP_BLOCKED_DETECTION_TOOLS if exempt is None else exempt
    return name in names


def is_blocked_tool_result(content: str, is_error: Optional[bool] = None) -> bool:
    """Heuristic: does a tool result look like a denial rather than a failure?"""
    if not content:
        return False
    lowered = content.lower()
    for marker in BLOCKED_MARKERS:
        if marker in lowered:
            return True
    if is_error and "deny" in lowered:
        return True
    return False


def shorten_path(path: Optional[str]) -> str:
    """Keep only the last two components of long paths."""
    if not path:
        return ""
    normalized = path.replace("\\", "/")
    parts = normalized.split("/")
    if len(parts) <= 3:
        return normalized
    return ".../" + "/".join(parts[-2:])


def get_tool_label(name: str, input: Dict[str, Any], bash_label_max: int = BASH_LABEL_MAX) -> str:
    """One-line display label for a tool call."""
    if name in (TOOL_READ, TOOL_WRITE, TOOL_EDIT):
        return f"{name} {shorten_path(input.get('file_path')) or 'file'}"
    if name == TOOL_BASH:
        cmd = input.get("command") or "command"
        if len(cmd) > bash_label_max:
            cmd = cmd[:bash_label_max] + "..."
        return f"Bash: {cmd}"
    if name == TOOL_GLOB:
        return f"Glob: {input.get('pattern') or 'files'}"
    if name == TOOL_GREP:
        return f"Grep: {input.get('pattern') or 'pattern'}"
    if name == TOOL_LS:
        return f"LS: {shorten_path(input.get('path')) or '.'}"
    if name == TOOL_TASK:
        return f"Task: {input.get('description') or 'subagent'}"
    return name


def get_subagent_description(input: Dict[str, Any]) -> str:
    return str(input.get("description") or input.get("subagent_type") or "Subagent")


def is_plan_file_path(file_path: Optional[str]) -> bool:
    """True if the path lies inside a .claude/plans directory."""
    if not file_path or not isinstance(file_path, str):
        return False
    return PLAN_DIR_PATTERN.search(file_path) is not None


def capture_plan_file_path(name: str, input: Dict[str, Any]) -> Optional[str]:
    """Return the plan file path if this tool call writes a plan file."""
    if name != TOOL_WRITE:
        return None
    file_path = input.get("file_path")
    if is_plan_file_path(file_path):
        return file_path
    return None


def parse_todo_input(input: Dict[str, Any]) -> Optional[List[TodoItem]]:
    """Parse todos from TodoWrite input.

    Returns:
        The well-formed items (malformed entries are skipped), or None if the
        input carries no todo list at all.
    """
    todos = input.get("todos")
    if not isinstance(todos, list):
        return None

    items: List[TodoItem] = []
    for item in todos:
        if not isinstance(item, dict):
            continue
        content = item.get("content")
        status = item.get("status")
        if not isinstance(content, str) or status not in TODO_STATUSES:
            continue
        active_form = item.get("activeForm", item.get("active_form", ""))
        items.append(TodoItem(content=content, status=status, active_form=str(active_form or "")))
    return items
