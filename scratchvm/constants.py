"""Constants used throughout decoding, conversion and scheduling."""

from typing import Any, Dict

# Opcode that marks a custom block definition at the head of a script
PROCEDURE_DEFINITION_OPCODE = "procDef"

# Fixed field layout of a procedure definition after the opcode:
# spec string, parameter names, default arguments, run-without-refresh flag
PROCEDURE_DEFINITION_FIELDS = ("spec", "parameter names", "default arguments", "warp flag")

# Tick period when running at full speed, in seconds
TICK_PERIOD = 1.0 / 30

# Share of each tick spent stepping scripts; the rest belongs to the renderer
WORK_BUDGET_FRACTION = 0.75

WORK_BUDGET = TICK_PERIOD * WORK_BUDGET_FRACTION

# Procedure calls nested deeper than this fault the calling thread
MAX_CALL_DEPTH = 512

# The stage never carried sprite transform fields; it is always installed here
STAGE_DEFAULT_TRANSFORM: Dict[str, Any] = {
    "x": 0.0,
    "y": 0.0,
    "scale": 100.0,
    "direction": 90.0,
    "rotation_style": "normal",
    "draggable": False,
    "visible": True,
}

# Name given to the stage target when the legacy document omits one
STAGE_NAME = "Stage"

# Clones beyond this count are silently not created
MAX_CLONES = 300
