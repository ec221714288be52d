"""Detection of the application the user is dictating into.

Platform detectors (frontmost window, browser URL, terminal process list) are
supplied by the host application. This module holds the protocol they
implement and the platform-independent matching used to enrich a terminal
context with the CLI tool running inside it.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Protocol, Tuple

from .models.context import InvocationContext

logger = logging.getLogger(__name__)

TERMINAL_BUNDLE_IDS = {
    "com.apple.Terminal": "Terminal",
    "com.googlecode.iterm2": "iTerm2",
    "com.mitchellh.ghostty": "Ghostty",
    "dev.warp.Warp-Stable": "Warp",
    "com.github.warp-terminal": "Warp",
}


@dataclass(frozen=True)
class CliTool:
    display_name: str
    process_names: Tuple[str, ...]
    title_keywords: Tuple[str, ...] = ()


CLI_TOOLS = (
    CliTool("Claude Code", ("claude",), ("claude code",)),
    CliTool("Gemini CLI", ("gemini",), ("gemini",)),
    CliTool("Codex CLI", ("codex",), ("codex",)),
    CliTool("Aider", ("aider",), ("aider",)),
    CliTool("Neovim", ("nvim",), ("neovim", "nvim")),
    CliTool("Vim", ("vim",)),
    CliTool("Emacs", ("emacs",), ("emacs",)),
    CliTool("Helix", ("hx",), ("helix",)),
)


class ContextDetector(Protocol):
    """Reports the frontmost application."""

    def detect(self) -> InvocationContext:
        ...


class NullContextDetector:
    """Detector for platforms without foreground-app detection."""

    def detect(self) -> InvocationContext:
        return InvocationContext()


class StaticContextDetector:
    """Always reports the same context; used by the CLI and in tests."""

    def __init__(self, context: Optional[InvocationContext] = None):
        self.context = context or InvocationContext()

    def detect(self) -> InvocationContext:
        return self.context


def lookup_terminal(bundle_id: str) -> Optional[str]:
    """Display name of a known terminal emulator, or None."""
    return TERMINAL_BUNDLE_IDS.get(bundle_id)


def match_cli_tool_by_processes(process_list: str) -> Optional[str]:
    """Match a comma separated process list ("login, -zsh, claude") against known CLI tools."""
    procs = [p.strip().lstrip("-") for p in process_list.lower().split(",")]
    for tool in CLI_TOOLS:
        if any(name in procs for name in tool.process_names):
            return tool.display_name
    return None


def match_cli_tool_by_title(title: str) -> Optional[str]:
    """Match a window or tab title against known CLI tools."""
    lowered = title.lower()
    for tool in CLI_TOOLS:
        if any(kw in lowered for kw in tool.title_keywords):
            return tool.display_name
        # Titles often contain the bare command name
        if any(name in lowered for name in tool.process_names):
            return tool.display_name
    return None


def enrich_terminal_context(context: InvocationContext,
                            process_list: str = "",
                            window_title: str = "") -> InvocationContext:
    """Replace a terminal's app name with the CLI tool running inside it.

    The process list is consulted before the window title. The terminal's own
    name is kept in ``terminal_host``. Non-terminal contexts are returned as is.
    """
    if lookup_terminal(context.bundle_id) is None:
        return context
    tool = None
    if process_list:
        tool = match_cli_tool_by_processes(process_list)
    if tool is None and window_title:
        tool = match_cli_tool_by_title(window_title)
    if tool is None:
        return context
    logger.debug(f"Detected {tool} running in {context.app_name}")
    return replace(context, app_name=tool, terminal_host=context.app_name)
