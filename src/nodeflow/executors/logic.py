"""
Logic executors: string combination and pulse-driven switches.

Pulse inputs carry the JSON completion marker ``{"fired": true, "timestamp": ...}``
written by the orchestrator for pulse-output nodes.
"""

import json
from typing import Optional

from ..models import ExecuteResult
from .base import ExecutionContext, NodeExecutor

COMBINE_HANDLES = ("input1", "input2", "input3", "input4")


def is_pulse_fired(value: Optional[str]) -> bool:
    """True when ``value`` is a completion marker with ``fired`` set."""
    if not value:
        return False
    try:
        pulse = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return False
    return isinstance(pulse, dict) and pulse.get("fired") is True


class StringCombineExecutor(NodeExecutor):
    """Joins the non-empty ``input1``..``input4`` values with ``data.separator``."""

    type = "string-combine"
    has_pulse_output = True

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        separator = ctx.text_setting("separator")
        parts = [ctx.inputs[h] for h in COMBINE_HANDLES if ctx.inputs.get(h)]
        return ExecuteResult(output=separator.join(parts))


class SwitchExecutor(NodeExecutor):
    """
    On/off switch driven by the pulse inputs ``flip``, ``turnOn`` and ``turnOff``.

    Explicit pulses take precedence over a toggle: turnOff, then turnOn, then
    flip. The starting state is ``data.isOn`` (default off). The new state is
    returned as ``"true"``/``"false"`` and in ``switch_state`` so callers can
    persist it.
    """

    type = "switch"

    async def execute(self, ctx: ExecutionContext) -> ExecuteResult:
        is_on = bool(ctx.data("isOn", False))
        if is_pulse_fired(ctx.inputs.get("turnOff")):
            is_on = False
        elif is_pulse_fired(ctx.inputs.get("turnOn")):
            is_on = True
        elif is_pulse_fired(ctx.inputs.get("flip")):
            is_on = not is_on
        return ExecuteResult(output="true" if is_on else "false", switch_state=is_on)
