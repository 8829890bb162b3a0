"""Block tree nodes produced by decoding legacy block arrays."""

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Union

# How a branch was written in the source array, so it can be written back.
BRANCH_FORM_LIST = "list"
BRANCH_FORM_NULL = "null"
BRANCH_FORM_INLINE = "inline"


def value_kind(value: Any) -> str:
    """Classify a literal the way the legacy JSON typed it."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    raise TypeError(f"not a literal value: {value!r}")


def is_literal_value(value: Any) -> bool:
    return isinstance(value, (bool, int, float, str))


class BlockSequence(list):
    """A nested sequence of blocks (a script body or a branch)."""

    def __init__(self, blocks: Iterable["BlockNode"] = (), form: str = BRANCH_FORM_LIST) -> None:
        super().__init__(blocks)
        self.form = form

    def __repr__(self) -> str:
        return f"BlockSequence({list.__repr__(self)})"


@dataclass
class Literal:
    """A constant argument: boolean, number or string."""
    value: Any

    @property
    def kind(self) -> str:
        return value_kind(self.value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Literal):
            return NotImplemented
        return self.kind == other.kind and self.value == other.value


@dataclass
class Expression:
    """A nested reporter block whose value is computed at run time."""
    block: "BlockNode"


Argument = Union[Literal, Expression]


@dataclass
class Leaf:
    """A block without nested scripts."""
    opcode: str
    arguments: List[Argument] = field(default_factory=list)

    @property
    def branches(self) -> List[BlockSequence]:
        return []


@dataclass
class OneBranch:
    """A block with one nested script, e.g. a loop or a conditional."""
    opcode: str
    arguments: List[Argument] = field(default_factory=list)
    branch: BlockSequence = field(default_factory=BlockSequence)

    @property
    def branches(self) -> List[BlockSequence]:
        return [self.branch]


@dataclass
class TwoBranch:
    """A block with two nested scripts, e.g. if/else."""
    opcode: str
    arguments: List[Argument] = field(default_factory=list)
    branch_a: BlockSequence = field(default_factory=BlockSequence)
    branch_b: BlockSequence = field(default_factory=BlockSequence)

    @property
    def branches(self) -> List[BlockSequence]:
        return [self.branch_a, self.branch_b]


@dataclass
class ProcedureDefinition:
    """A custom block definition; only legal at the head of a top-level script."""
    spec: str
    parameter_names: List[str] = field(default_factory=list)
    default_arguments: List[Any] = field(default_factory=list)
    body: BlockSequence = field(default_factory=BlockSequence)
    run_without_screen_refresh: bool = False


BlockNode = Union[Leaf, OneBranch, TwoBranch]


@dataclass
class TopLevelItem:
    """A script placed on the authoring canvas at ``(x, y)``."""
    x: float
    y: float
    stack: Union[BlockSequence, ProcedureDefinition]

    @property
    def is_definition(self) -> bool:
        return isinstance(self.stack, ProcedureDefinition)

    @property
    def blocks(self) -> BlockSequence:
        """The executable blocks: the script itself or the definition body."""
        if isinstance(self.stack, ProcedureDefinition):
            return self.stack.body
        return self.stack

    @property
    def hat(self) -> Union[BlockNode, None]:
        if self.is_definition or not self.stack:
            return None
        return self.stack[0]


def walk(blocks: Iterable[BlockNode]) -> Iterator[BlockNode]:
    """Yield every block in ``blocks`` depth-first, including reporters and branches."""
    for block in blocks:
        yield block
        for argument in block.arguments:
            if isinstance(argument, Expression):
                yield from walk([argument.block])
        for branch in block.branches:
            yield from walk(branch)
