"""Current integration step ID via contextvars."""

from __future__ import annotations

from contextvars import ContextVar

step_id_var: ContextVar[str] = ContextVar("step_id", default="")


def get_step_id() -> str:
    """Read the current step ID from the contextvar."""
    return step_id_var.get()
