"""Decoding of untagged legacy block arrays into block trees.

A legacy block is a flat JSON array: the opcode, then its arguments, then
(for control blocks) one or two nested scripts. Nothing in the array says
how many trailing elements are branches, so the branch count is looked up
by opcode and the decoder keeps a sliding window of the last ``N`` unread
elements. Every element read after the window is full pushes the oldest
window element out as a confirmed argument; whatever is left in the window
when the array runs out is the branch (or branches).
"""

from collections import deque
from typing import Any, Deque, List, Optional, Sequence, Tuple, Union

from .block_tree import (
    BRANCH_FORM_INLINE,
    BRANCH_FORM_LIST,
    BRANCH_FORM_NULL,
    Argument,
    BlockNode,
    BlockSequence,
    Expression,
    Leaf,
    Literal,
    OneBranch,
    ProcedureDefinition,
    TopLevelItem,
    TwoBranch,
    is_literal_value,
)
from .constants import PROCEDURE_DEFINITION_FIELDS, PROCEDURE_DEFINITION_OPCODE
from .errors import DecodeError
from .opcodes import branch_arity

BLOCK_FAMILIES = {0: "block", 1: "C block", 2: "E block"}
BRANCH_ORDINALS = ("first", "second")


def _read_opcode(items: Any) -> str:
    if not isinstance(items, list):
        raise DecodeError("expected a block array", f"got {type(items).__name__}")
    if not items:
        raise DecodeError("could not read opcode for block", "the block array is empty", [0])
    opcode = items[0]
    if not isinstance(opcode, str):
        raise DecodeError("could not read opcode for block", f"expected a string, got {opcode!r}", [0])
    return opcode


def split_branches(items: Sequence[Any], count: int) -> Tuple[List[Any], List[Any]]:
    """Split the elements after the opcode into (arguments, branches).

    The window is seeded with exactly ``count`` elements before any later
    read confirms an argument, so a block with zero arguments and ``count``
    branches decodes with every element in the window.
    """
    family = BLOCK_FAMILIES.get(count, f"{count}-branch block")
    elements = iter(items[1:])
    window: Deque[Any] = deque()
    for position in range(count):
        try:
            window.append(next(elements))
        except StopIteration:
            raise DecodeError(
                f"could not find {BRANCH_ORDINALS[position]} branch for {family}",
                f"'{items[0]}' has {len(items) - 1} element(s) after the opcode",
                [len(items)],
            ) from None

    arguments: List[Any] = []
    for element in elements:
        if window:
            arguments.append(window.popleft())
            window.append(element)
        else:
            arguments.append(element)
    return arguments, list(window)


def decode_argument(raw: Any) -> Argument:
    if is_literal_value(raw):
        return Literal(raw)
    if isinstance(raw, list):
        return Expression(decode_block(raw))
    raise DecodeError("could not interpret argument", f"expected a literal or a reporter, got {raw!r}")


def decode_branch(raw: Any) -> BlockSequence:
    """Decode a nested script in branch position."""
    if raw is None:
        return BlockSequence(form=BRANCH_FORM_NULL)
    if not isinstance(raw, list):
        raise DecodeError("could not interpret branch", f"expected a list of blocks, got {raw!r}")
    if raw and isinstance(raw[0], str):
        # A lone block written without its enclosing list
        return BlockSequence([decode_block(raw)], form=BRANCH_FORM_INLINE)

    blocks = BlockSequence(form=BRANCH_FORM_LIST)
    for index, entry in enumerate(raw):
        try:
            blocks.append(decode_block(entry))
        except DecodeError as err:
            raise err.within(index) from None
    return blocks


def _decode_with_branches(items: Any, count: int) -> Tuple[str, List[Argument], List[BlockSequence]]:
    opcode = _read_opcode(items)
    if opcode == PROCEDURE_DEFINITION_OPCODE:
        raise DecodeError(
            "unexpected procedure definition",
            "only the first block of a top-level script may define a procedure",
        )
    raw_arguments, raw_branches = split_branches(items, count)

    arguments: List[Argument] = []
    for offset, raw in enumerate(raw_arguments, start=1):
        try:
            arguments.append(decode_argument(raw))
        except DecodeError as err:
            raise err.within(offset) from None

    branches: List[BlockSequence] = []
    first_branch_index = 1 + len(raw_arguments)
    for position, raw in enumerate(raw_branches):
        try:
            branches.append(decode_branch(raw))
        except DecodeError as err:
            raise err.within(first_branch_index + position, f"branch {position}") from None
    return opcode, arguments, branches


def decode_leaf(items: Any) -> Leaf:
    opcode, arguments, _ = _decode_with_branches(items, 0)
    return Leaf(opcode, arguments)


def decode_one_branch(items: Any) -> OneBranch:
    opcode, arguments, branches = _decode_with_branches(items, 1)
    return OneBranch(opcode, arguments, branches[0])


def decode_two_branch(items: Any) -> TwoBranch:
    opcode, arguments, branches = _decode_with_branches(items, 2)
    return TwoBranch(opcode, arguments, branches[0], branches[1])


def decode_procedure_definition(items: Any) -> ProcedureDefinition:
    """Decode ``["procDef", spec, parameter_names, default_arguments, warp]``."""
    opcode = _read_opcode(items)
    if opcode != PROCEDURE_DEFINITION_OPCODE:
        raise DecodeError("expected a procedure definition", f"got opcode '{opcode}'", [0])

    fields: List[Any] = []
    for position, name in enumerate(PROCEDURE_DEFINITION_FIELDS, start=1):
        if position >= len(items):
            raise DecodeError(f"could not find {name} for procedure definition", "", [position])
        fields.append(items[position])
    if len(items) > len(PROCEDURE_DEFINITION_FIELDS) + 1:
        raise DecodeError(
            "unexpected trailing element in procedure definition",
            f"{len(items) - 1} elements after the opcode",
            [len(PROCEDURE_DEFINITION_FIELDS) + 1],
        )

    spec, parameter_names, default_arguments, warp = fields
    if not isinstance(spec, str):
        raise DecodeError("could not interpret spec for procedure definition", repr(spec), [1])
    if not isinstance(parameter_names, list) or not all(isinstance(n, str) for n in parameter_names):
        raise DecodeError("could not interpret parameter names for procedure definition", repr(parameter_names), [2])
    if not isinstance(default_arguments, list) or not all(is_literal_value(v) for v in default_arguments):
        raise DecodeError("could not interpret default arguments for procedure definition", repr(default_arguments), [3])
    if not isinstance(warp, bool):
        raise DecodeError("could not interpret warp flag for procedure definition", repr(warp), [4])

    return ProcedureDefinition(
        spec=spec,
        parameter_names=list(parameter_names),
        default_arguments=list(default_arguments),
        run_without_screen_refresh=warp,
    )


def decode_block(
    items: Any,
    arity: Optional[int] = None,
    allow_definition: bool = False,
) -> Union[BlockNode, ProcedureDefinition]:
    """Decode one block array, looking its branch count up by opcode unless ``arity`` is given."""
    opcode = _read_opcode(items)
    if opcode == PROCEDURE_DEFINITION_OPCODE and allow_definition:
        return decode_procedure_definition(items)
    if arity is None:
        arity = branch_arity(opcode)
    if arity == 0:
        return decode_leaf(items)
    if arity == 1:
        return decode_one_branch(items)
    if arity == 2:
        return decode_two_branch(items)
    raise DecodeError("unsupported branch count", f"'{opcode}' declares {arity} branches", [0])


def decode_script(items: Any) -> Union[BlockSequence, ProcedureDefinition]:
    """Decode a top-level block sequence.

    A procedure definition is accepted only as the first block; the blocks
    after it become its body.
    """
    if not isinstance(items, list):
        raise DecodeError("expected a list of blocks", f"got {type(items).__name__}")

    blocks = BlockSequence()
    definition: Optional[ProcedureDefinition] = None
    for index, entry in enumerate(items):
        try:
            node = decode_block(entry, allow_definition=(index == 0))
        except DecodeError as err:
            raise err.within(index) from None
        if isinstance(node, ProcedureDefinition):
            definition = node
            continue
        blocks.append(node)

    if definition is not None:
        definition.body = blocks
        return definition
    return blocks


def decode_top_level_item(raw: Any) -> TopLevelItem:
    """Decode ``[x, y, blocks]`` as stored in a legacy target's ``scripts``."""
    if not isinstance(raw, list) or len(raw) != 3:
        raise DecodeError("expected a top-level script as [x, y, blocks]", repr(raw)[:60])
    x, y, blocks = raw
    for position, coordinate in enumerate((x, y)):
        if isinstance(coordinate, bool) or not isinstance(coordinate, (int, float)):
            raise DecodeError("could not read script position", repr(coordinate), [position])
    try:
        stack = decode_script(blocks)
    except DecodeError as err:
        raise err.within(2) from None
    return TopLevelItem(x, y, stack)


def encode_argument(argument: Argument) -> Any:
    if isinstance(argument, Literal):
        return argument.value
    return encode_block(argument.block)


def encode_branch(branch: BlockSequence) -> Any:
    form = getattr(branch, "form", BRANCH_FORM_LIST)
    if form == BRANCH_FORM_NULL and not branch:
        return None
    if form == BRANCH_FORM_INLINE and len(branch) == 1:
        return encode_block(branch[0])
    return [encode_block(block) for block in branch]


def encode_block(node: Union[BlockNode, ProcedureDefinition]) -> List[Any]:
    """Re-encode a node as the flat array it was decoded from."""
    if isinstance(node, ProcedureDefinition):
        return [
            PROCEDURE_DEFINITION_OPCODE,
            node.spec,
            list(node.parameter_names),
            list(node.default_arguments),
            node.run_without_screen_refresh,
        ]
    encoded: List[Any] = [node.opcode]
    encoded.extend(encode_argument(argument) for argument in node.arguments)
    encoded.extend(encode_branch(branch) for branch in node.branches)
    return encoded


def encode_script(stack: Union[BlockSequence, ProcedureDefinition]) -> List[Any]:
    if isinstance(stack, ProcedureDefinition):
        return [encode_block(stack)] + [encode_block(block) for block in stack.body]
    return [encode_block(block) for block in stack]


def encode_top_level_item(item: TopLevelItem) -> List[Any]:
    return [item.x, item.y, encode_script(item.stack)]
