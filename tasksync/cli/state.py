"""CLI state management."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CLIState:
    """Immutable CLI-wide configuration.

    Populated by the root Typer callback and stored in ``ctx.obj``.

    Attributes:
        json_mode: Output JSON for scripting instead of rich text.
        verbose: Show debug logs.
        api_url: Session API base URL (e.g., "http://localhost:8000/api").
    """

    json_mode: bool = False
    verbose: bool = False
    api_url: str = "http://localhost:8000/api"
