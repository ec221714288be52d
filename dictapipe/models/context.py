"""Invocation context captured when a recording session starts."""

from dataclasses import dataclass


@dataclass
class InvocationContext:
    """The foreground application the user is dictating into."""
    app_name: str = ""
    bundle_id: str = ""
    url: str = ""
    # Original terminal name when app_name was replaced by a CLI tool running inside it
    terminal_host: str = ""
