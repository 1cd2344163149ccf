"""OpenTelemetry spans around CLI commands.

Only the API is used; exporters are left to the host environment.
"""

import asyncio
import functools
import json
from typing import Any, Callable, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

from tasksync.logging import get_logger

logger = get_logger(__name__)

tracer = trace.get_tracer(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _record_arguments(span: Span, command_name: str, kwargs: dict) -> None:
    span.set_attribute("cli.command", command_name)
    # typer.Context is not serializable and carries nothing useful
    arguments = {k: v for k, v in kwargs.items() if k != "ctx"}
    try:
        span.set_attribute("cli.args", json.dumps(arguments, default=str))
    except (TypeError, ValueError) as e:
        logger.debug(f"Could not serialize CLI args: {e}")
        span.set_attribute("cli.args", str(arguments))
    for key in ("session_id", "approval_id", "artifact_id"):
        if isinstance(arguments.get(key), str):
            span.set_attribute(f"tasksync.{key}", arguments[key])


def trace_cli_command(command_name: str) -> Callable[[F], F]:
    """Run the decorated command inside a ``cli.<command_name>`` span.

    The span records the command name, its arguments and any exception.
    Works for both sync and async callables.

    Example:
        @trace_cli_command("follow")
        def follow(ctx: typer.Context, session_id: str) -> None:
            ...
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(f"cli.{command_name}") as span:
                _record_arguments(span, command_name, kwargs)
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(f"cli.{command_name}") as span:
                _record_arguments(span, command_name, kwargs)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator
