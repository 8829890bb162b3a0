"""Block execution: one block-step of a thread at a time.

Control blocks (loops, conditionals, waits, procedure calls) are interpreted
structurally by :class:`BlockExecutor` itself. Every other opcode is looked
up in a registry of command and reporter handlers, which an embedding
engine can extend or replace. Unknown opcodes run as no-ops.
"""

import math
import random
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from .block_tree import Argument, BlockNode, Literal
from .constants import MAX_CALL_DEPTH
from .opcodes import is_hat
from .program import ListData, RotationStyle, Variable
from .threads import Thread
from .utils import is_numeric, to_boolean, to_number, to_text, wrap_degrees


class StepResult(Enum):
    # The thread may be stepped again this tick
    CONTINUE = "continue"
    # The thread yielded at a loop boundary; it stays runnable this tick
    YIELD = "yield"
    # The thread sleeps until a later tick
    WAIT = "wait"
    DONE = "done"


class ThreadFault(Exception):
    """A logic fault that terminates the thread raising it."""


CommandHandler = Callable[[Thread, List[Any]], Optional[StepResult]]
ReporterHandler = Callable[[Thread, List[Any]], Any]


class BlockExecutor:
    def __init__(self) -> None:
        self.commands: Dict[str, CommandHandler] = dict(DEFAULT_COMMANDS)
        self.reporters: Dict[str, ReporterHandler] = dict(DEFAULT_REPORTERS)
        self._reported: Set[str] = set()

    def register_command(self, opcode: str, handler: CommandHandler) -> None:
        self.commands[opcode] = handler

    def register_reporter(self, opcode: str, handler: ReporterHandler) -> None:
        self.reporters[opcode] = handler

    def _report_unknown(self, thread: Thread, opcode: str) -> None:
        if opcode in self._reported:
            return
        self._reported.add(opcode)
        ctx = thread.runtime.diagnostics.context(thread.target.name)
        ctx.info(f"Opcode '{opcode}' is not implemented; running it as a no-op", thread.script_index)

    # -- evaluation -------------------------------------------------------

    def evaluate(self, thread: Thread, argument: Argument) -> Any:
        if isinstance(argument, Literal):
            return argument.value
        return self.report(thread, argument.block)

    def report(self, thread: Thread, block: BlockNode) -> Any:
        if block.opcode == "getParam":
            name = self.evaluate(thread, block.arguments[0]) if block.arguments else ""
            return thread.param(to_text(name))
        handler = self.reporters.get(block.opcode)
        if handler is None:
            self._report_unknown(thread, block.opcode)
            return ""
        return handler(thread, [self.evaluate(thread, arg) for arg in block.arguments])

    def condition(self, thread: Thread, block: BlockNode) -> bool:
        if not block.arguments:
            return False
        return to_boolean(self.evaluate(thread, block.arguments[0]))

    # -- stepping ---------------------------------------------------------

    def step(self, thread: Thread) -> StepResult:
        """Execute exactly one block or one control decision of ``thread``."""
        if not thread.frames:
            return StepResult.DONE
        thread.steps += 1
        frame = thread.top
        block = frame.current
        if block is None:
            thread.frames.pop()
            if not thread.frames:
                return StepResult.DONE
            if frame.loop and not thread.warped:
                return StepResult.YIELD
            return StepResult.CONTINUE

        control = CONTROL_HANDLERS.get(block.opcode)
        if control is not None:
            return control(self, thread, block)

        frame.index += 1
        if is_hat(block.opcode):
            return StepResult.CONTINUE
        handler = self.commands.get(block.opcode)
        if handler is None:
            self._report_unknown(thread, block.opcode)
            return StepResult.CONTINUE
        args = [self.evaluate(thread, arg) for arg in block.arguments]
        result = handler(thread, args)
        return result if result is not None else StepResult.CONTINUE


def _branch(block: BlockNode, position: int = 0) -> List[BlockNode]:
    branches = block.branches
    return branches[position] if position < len(branches) else []


def _do_if(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    thread.top.index += 1
    if executor.condition(thread, block):
        thread.push(_branch(block))
    return StepResult.CONTINUE


def _do_if_else(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    thread.top.index += 1
    thread.push(_branch(block, 0 if executor.condition(thread, block) else 1))
    return StepResult.CONTINUE


def _do_forever(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    thread.push(_branch(block), loop=True)
    return StepResult.CONTINUE


def _do_forever_if(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    if executor.condition(thread, block):
        thread.push(_branch(block), loop=True)
        return StepResult.CONTINUE
    return StepResult.WAIT


def _do_repeat(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    frame = thread.top
    remaining = frame.counters.get(frame.index)
    if remaining is None:
        times = to_number(executor.evaluate(thread, block.arguments[0])) if block.arguments else 0
        remaining = int(round(times)) if math.isfinite(times) else 0
    if remaining <= 0:
        frame.counters.pop(frame.index, None)
        frame.index += 1
        return StepResult.CONTINUE
    frame.counters[frame.index] = remaining - 1
    thread.push(_branch(block), loop=True)
    return StepResult.CONTINUE


def _loop_while(executor: BlockExecutor, thread: Thread, block: BlockNode, keep_going: bool) -> StepResult:
    if executor.condition(thread, block) == keep_going:
        thread.push(_branch(block), loop=True)
    else:
        thread.top.index += 1
    return StepResult.CONTINUE


def _do_until(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    return _loop_while(executor, thread, block, False)


def _do_while(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    return _loop_while(executor, thread, block, True)


def _do_for_loop(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    frame = thread.top
    name = to_text(executor.evaluate(thread, block.arguments[0])) if block.arguments else ""
    state = frame.counters.get(frame.index)
    if state is None:
        limit = to_number(executor.evaluate(thread, block.arguments[1])) if len(block.arguments) > 1 else 0
        state = [0, limit]
    state[0] += 1
    if state[0] > state[1]:
        frame.counters.pop(frame.index, None)
        frame.index += 1
        return StepResult.CONTINUE
    frame.counters[frame.index] = state
    _set_variable(thread, name, state[0])
    thread.push(_branch(block), loop=True)
    return StepResult.CONTINUE


def _do_warp(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    thread.top.index += 1
    thread.push(_branch(block), warp=True)
    return StepResult.CONTINUE


def _do_wait_until(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    if executor.condition(thread, block):
        thread.top.index += 1
        return StepResult.CONTINUE
    return StepResult.WAIT


def _do_wait(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    frame = thread.top
    now = thread.runtime.now
    deadline = frame.counters.get(frame.index)
    if deadline is None:
        seconds = to_number(executor.evaluate(thread, block.arguments[0])) if block.arguments else 0
        deadline = now + max(0.0, seconds)
        frame.counters[frame.index] = deadline
        thread.wake_time = deadline
        return StepResult.WAIT
    if now < deadline:
        return StepResult.WAIT
    thread.wake_time = None
    frame.counters.pop(frame.index, None)
    frame.index += 1
    return StepResult.CONTINUE


def _do_call(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    thread.top.index += 1
    if not block.arguments:
        return StepResult.CONTINUE
    spec = to_text(executor.evaluate(thread, block.arguments[0]))
    definition = thread.target.sprite.procedures.get(spec)
    if definition is None:
        return StepResult.CONTINUE
    if thread.call_depth >= MAX_CALL_DEPTH:
        raise ThreadFault(f"procedure '{spec}' exceeded the call depth limit of {MAX_CALL_DEPTH}")
    values = [executor.evaluate(thread, arg) for arg in block.arguments[1:]]
    params: Dict[str, Any] = {}
    for position, name in enumerate(definition.parameter_names):
        if position < len(values):
            params[name] = values[position]
        elif position < len(definition.default_arguments):
            params[name] = definition.default_arguments[position]
        else:
            params[name] = ""
    thread.push(definition.body, warp=definition.run_without_screen_refresh, params=params)
    return StepResult.CONTINUE


def _stop_scripts(executor: BlockExecutor, thread: Thread, block: BlockNode) -> StepResult:
    thread.top.index += 1
    option = to_text(executor.evaluate(thread, block.arguments[0])) if block.arguments else "all"
    runtime = thread.runtime
    if option == "all":
        for other in runtime.threads:
            other.stop()
        thread.stop()
        return StepResult.DONE
    if option.startswith("other scripts"):
        for other in runtime.threads_for(thread.target):
            if other is not thread:
                other.stop()
        return StepResult.CONTINUE
    thread.stop()
    return StepResult.DONE


CONTROL_HANDLERS: Dict[str, Callable[[BlockExecutor, Thread, BlockNode], StepResult]] = {
    "doIf": _do_if,
    "doIfElse": _do_if_else,
    "ifElse": _do_if_else,
    "doForever": _do_forever,
    "doForeverIf": _do_forever_if,
    "doRepeat": _do_repeat,
    "doUntil": _do_until,
    "doWhile": _do_while,
    "doForLoop": _do_for_loop,
    "doWarp": _do_warp,
    "doWaitUntil": _do_wait_until,
    "wait:elapsed:from:": _do_wait,
    "call": _do_call,
    "stopScripts": _stop_scripts,
}


# -- default command handlers ----------------------------------------------

def _variable(thread: Thread, name: str) -> Variable:
    variable = thread.runtime.lookup_variable(thread.target, name)
    if variable is None:
        variable = Variable(0)
        thread.target.variables[name] = variable
    return variable


def _set_variable(thread: Thread, name: str, value: Any) -> None:
    _variable(thread, name).value = value


def _list(thread: Thread, name: str) -> ListData:
    found = thread.runtime.lookup_list(thread.target, name)
    if found is None:
        found = ListData()
        thread.target.lists[name] = found
    return found


def _list_index(spec: Any, length: int, allow_end: bool = False) -> Optional[int]:
    """Resolve a 1-based list position, ``"last"`` or ``"random"`` to a 0-based index."""
    if spec == "last":
        return length - 1 if length else None
    if spec in ("random", "any"):
        return random.randrange(length) if length else None
    number = to_number(spec)
    if not math.isfinite(number):
        return None
    position = int(number)
    upper = length + 1 if allow_end else length
    if 1 <= position <= upper:
        return position - 1
    return None


def _forward(thread: Thread, args: List[Any]) -> None:
    steps = to_number(args[0]) if args else 0
    radians = math.radians(thread.target.direction)
    thread.target.x += steps * math.sin(radians)
    thread.target.y += steps * math.cos(radians)


def _turn(sign: int) -> CommandHandler:
    def handler(thread: Thread, args: List[Any]) -> None:
        degrees = to_number(args[0]) if args else 0
        thread.target.direction = wrap_degrees(thread.target.direction + sign * degrees)
    return handler


def _heading(thread: Thread, args: List[Any]) -> None:
    thread.target.direction = wrap_degrees(to_number(args[0]) if args else 90)


def _goto_xy(thread: Thread, args: List[Any]) -> None:
    thread.target.x = to_number(args[0]) if args else 0
    thread.target.y = to_number(args[1]) if len(args) > 1 else 0


def _set_attr(attribute: str, delta: bool) -> CommandHandler:
    def handler(thread: Thread, args: List[Any]) -> None:
        amount = to_number(args[0]) if args else 0
        if delta:
            amount += getattr(thread.target, attribute)
        setattr(thread.target, attribute, amount)
    return handler


def _set_visible(visible: bool) -> CommandHandler:
    def handler(thread: Thread, args: List[Any]) -> None:
        thread.target.visible = visible
    return handler


def _set_rotation_style(thread: Thread, args: List[Any]) -> None:
    style = RotationStyle.from_legacy(to_text(args[0]) if args else "")
    if style is not None:
        thread.target.rotation_style = style


def _look_like(thread: Thread, args: List[Any]) -> None:
    costumes = thread.target.sprite.costumes
    if not costumes or not args:
        return
    wanted = args[0]
    if isinstance(wanted, str) and not is_numeric(wanted):
        for index, costume in enumerate(costumes):
            if costume.name == wanted:
                thread.target.current_costume = index
        return
    position = int(round(to_number(wanted)))
    thread.target.current_costume = (position - 1) % len(costumes)


def _next_costume(thread: Thread, args: List[Any]) -> None:
    costumes = thread.target.sprite.costumes
    if costumes:
        thread.target.current_costume = (thread.target.current_costume + 1) % len(costumes)


def _start_scene(thread: Thread, args: List[Any]) -> None:
    stage = thread.runtime.stage
    name = to_text(args[0]) if args else ""
    if stage is not None:
        for index, costume in enumerate(stage.sprite.costumes):
            if costume.name == name:
                stage.current_costume = index
    thread.runtime.scene_started(name)


def _change_size(thread: Thread, args: List[Any]) -> None:
    thread.target.scale = max(0, thread.target.scale + (to_number(args[0]) if args else 0))


def _set_size(thread: Thread, args: List[Any]) -> None:
    thread.target.scale = max(0, to_number(args[0]) if args else 100)


def _set_var(thread: Thread, args: List[Any]) -> None:
    if args:
        _set_variable(thread, to_text(args[0]), args[1] if len(args) > 1 else 0)


def _change_var(thread: Thread, args: List[Any]) -> None:
    if args:
        variable = _variable(thread, to_text(args[0]))
        variable.value = to_number(variable.value) + (to_number(args[1]) if len(args) > 1 else 0)


def _append_to_list(thread: Thread, args: List[Any]) -> None:
    if len(args) > 1:
        _list(thread, to_text(args[1])).values.append(args[0])


def _delete_line(thread: Thread, args: List[Any]) -> None:
    if len(args) < 2:
        return
    values = _list(thread, to_text(args[1])).values
    if args[0] == "all":
        values.clear()
        return
    index = _list_index(args[0], len(values))
    if index is not None:
        del values[index]


def _insert_at(thread: Thread, args: List[Any]) -> None:
    if len(args) < 3:
        return
    values = _list(thread, to_text(args[2])).values
    index = _list_index(args[1], len(values), allow_end=True)
    if index is not None:
        values.insert(index, args[0])


def _set_line(thread: Thread, args: List[Any]) -> None:
    if len(args) < 3:
        return
    values = _list(thread, to_text(args[1])).values
    index = _list_index(args[0], len(values))
    if index is not None:
        values[index] = args[2]


def _broadcast(thread: Thread, args: List[Any]) -> None:
    thread.runtime.broadcast(to_text(args[0]) if args else "")


def _create_clone(thread: Thread, args: List[Any]) -> None:
    name = to_text(args[0]) if args else "_myself_"
    original = thread.target if name == "_myself_" else thread.runtime.find_target(name)
    if original is not None:
        thread.runtime.create_clone(original)


def _delete_clone(thread: Thread, args: List[Any]) -> Optional[StepResult]:
    if not thread.target.is_clone:
        return None
    thread.runtime.remove_target(thread.target)
    thread.stop()
    return StepResult.DONE


def _reset_timer(thread: Thread, args: List[Any]) -> None:
    thread.runtime.timer_start = thread.runtime.now


DEFAULT_COMMANDS: Dict[str, CommandHandler] = {
    "forward:": _forward,
    "turnRight:": _turn(1),
    "turnLeft:": _turn(-1),
    "heading:": _heading,
    "gotoX:y:": _goto_xy,
    "changeXposBy:": _set_attr("x", True),
    "xpos:": _set_attr("x", False),
    "changeYposBy:": _set_attr("y", True),
    "ypos:": _set_attr("y", False),
    "setRotationStyle": _set_rotation_style,
    "show": _set_visible(True),
    "hide": _set_visible(False),
    "lookLike:": _look_like,
    "nextCostume": _next_costume,
    "startScene": _start_scene,
    "changeSizeBy:": _change_size,
    "setSizeTo:": _set_size,
    "setVar:to:": _set_var,
    "changeVar:by:": _change_var,
    "append:toList:": _append_to_list,
    "deleteLine:ofList:": _delete_line,
    "insert:at:ofList:": _insert_at,
    "setLine:ofList:to:": _set_line,
    "broadcast:": _broadcast,
    "doBroadcastAndWait": _broadcast,
    "createCloneOf": _create_clone,
    "deleteClone": _delete_clone,
    "timerReset": _reset_timer,
}


# -- default reporters ------------------------------------------------------

def _compare(a: Any, b: Any) -> int:
    if is_numeric(a) and is_numeric(b):
        x, y = to_number(a), to_number(b)
    else:
        x, y = to_text(a).lower(), to_text(b).lower()
    return (x > y) - (x < y)


def _arithmetic(operation: Callable[[float, float], Any]) -> ReporterHandler:
    def handler(thread: Thread, args: List[Any]) -> Any:
        a = to_number(args[0]) if args else 0
        b = to_number(args[1]) if len(args) > 1 else 0
        return operation(a, b)
    return handler


def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0:
            return math.nan
        return math.inf if a > 0 else -math.inf
    return a / b


def _modulo(a: float, b: float) -> float:
    if b == 0:
        return math.nan
    return a % b


def _random(thread: Thread, args: List[Any]) -> Any:
    low = to_number(args[0]) if args else 1
    high = to_number(args[1]) if len(args) > 1 else 10
    low, high = min(low, high), max(low, high)
    if isinstance(low, int) and isinstance(high, int):
        return random.randint(low, high)
    return random.uniform(low, high)


def _read_variable(thread: Thread, args: List[Any]) -> Any:
    variable = thread.runtime.lookup_variable(thread.target, to_text(args[0]) if args else "")
    return variable.value if variable is not None else 0


def _list_item(thread: Thread, args: List[Any]) -> Any:
    if len(args) < 2:
        return ""
    values = _list(thread, to_text(args[1])).values
    index = _list_index(args[0], len(values))
    return values[index] if index is not None else ""


def _list_length(thread: Thread, args: List[Any]) -> Any:
    return len(_list(thread, to_text(args[0]) if args else "").values)


def _list_contents(thread: Thread, args: List[Any]) -> Any:
    values = [to_text(v) for v in _list(thread, to_text(args[0]) if args else "").values]
    separator = "" if values and all(len(v) == 1 for v in values) else " "
    return separator.join(values)


def _timer(thread: Thread, args: List[Any]) -> Any:
    runtime = thread.runtime
    if runtime.timer_start is None:
        runtime.timer_start = runtime.now
    return runtime.now - runtime.timer_start


DEFAULT_REPORTERS: Dict[str, ReporterHandler] = {
    "xpos": lambda thread, args: thread.target.x,
    "ypos": lambda thread, args: thread.target.y,
    "heading": lambda thread, args: thread.target.direction,
    "costumeIndex": lambda thread, args: thread.target.current_costume + 1,
    "scale": lambda thread, args: thread.target.scale,
    "+": _arithmetic(lambda a, b: a + b),
    "-": _arithmetic(lambda a, b: a - b),
    "*": _arithmetic(lambda a, b: a * b),
    "/": _arithmetic(_divide),
    "%": _arithmetic(_modulo),
    "<": lambda thread, args: _compare(*args[:2]) < 0 if len(args) > 1 else False,
    "=": lambda thread, args: _compare(*args[:2]) == 0 if len(args) > 1 else False,
    ">": lambda thread, args: _compare(*args[:2]) > 0 if len(args) > 1 else False,
    "&": lambda thread, args: all(to_boolean(a) for a in args[:2]) if len(args) > 1 else False,
    "|": lambda thread, args: any(to_boolean(a) for a in args[:2]),
    "not": lambda thread, args: not to_boolean(args[0]) if args else True,
    "concatenate:with:": lambda thread, args: "".join(to_text(a) for a in args[:2]),
    "randomFrom:to:": _random,
    "readVariable": _read_variable,
    "getLine:ofList:": _list_item,
    "lineCountOfList:": _list_length,
    "contentsOfList:": _list_contents,
    "timer": _timer,
}
