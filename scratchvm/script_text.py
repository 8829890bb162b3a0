from typing import Any, List

from .block_tree import BlockNode, Expression, Literal, ProcedureDefinition, TopLevelItem
from .opcodes import OPCODE_LABELS
from .utils import to_text

INDENT = "    "


def format_argument(argument: Any) -> str:
    if isinstance(argument, Expression):
        return format_reporter(argument.block)
    if isinstance(argument, Literal):
        if argument.kind == "number":
            return f"({to_text(argument.value)})"
        if argument.kind == "boolean":
            return f"<{to_text(argument.value)}>"
        return f"[{argument.value}]"
    return ""


def _label(block: BlockNode, args: List[str]) -> str:
    template = OPCODE_LABELS.get(block.opcode)
    if template is None:
        return f"{block.opcode} {' '.join(args)}".rstrip()
    try:
        return template.format(*args)
    except IndexError:
        # Fewer arguments than placeholders; pad the rest
        padded = args + [""] * template.count("{")
        return template.format(*padded)


def format_reporter(block: BlockNode) -> str:
    args = [format_argument(arg) for arg in block.arguments]
    if block.opcode in ("readVariable", "getParam", "contentsOfList:") and block.arguments:
        first = block.arguments[0]
        if isinstance(first, Literal):
            return f"({to_text(first.value)})"
    label = _label(block, args)
    if label.startswith(("(", "<")):
        return label
    return f"({label})"


def _call_label(block: BlockNode) -> str:
    if not block.arguments or not isinstance(block.arguments[0], Literal):
        return "call"
    parts = to_text(block.arguments[0].value).replace("%b", "%s").replace("%n", "%s").split("%s")
    args = [format_argument(arg) for arg in block.arguments[1:]]
    text = ""
    for idx, part in enumerate(parts):
        text += part
        if idx < len(args):
            text += args[idx]
    return text.strip()


def format_blocks(blocks: List[BlockNode], indent_level: int = 0) -> str:
    indent = INDENT * indent_level
    result = ""
    for block in blocks:
        if block.opcode == "call":
            result += f"{indent}{_call_label(block)}\n"
            continue
        args = [format_argument(arg) for arg in block.arguments]
        result += f"{indent}{_label(block, args)}\n"
        branches = block.branches
        if not branches:
            continue
        for position, branch in enumerate(branches):
            if position:
                result += f"{indent}else\n"
            result += format_blocks(branch, indent_level + 1)
        result += f"{indent}end\n"
    return result


def format_definition(definition: ProcedureDefinition) -> str:
    parts = definition.spec.replace("%b", "%s").replace("%n", "%s").split("%s")
    text = "define "
    for idx, part in enumerate(parts):
        text += part
        if idx < len(definition.parameter_names):
            text += f"({definition.parameter_names[idx]})"
    if definition.run_without_screen_refresh:
        text += " #norefresh"
    return text.rstrip() + "\n"


def format_item(item: TopLevelItem) -> str:
    """Render one top-level script as indented text."""
    if isinstance(item.stack, ProcedureDefinition):
        return format_definition(item.stack) + format_blocks(item.stack.body, 1)
    return format_blocks(item.stack)


def format_sprite(sprite: Any) -> str:
    """Render every script of a sprite (or archetype), separated by blank lines."""
    return "\n".join(format_item(item) for item in sprite.scripts)
