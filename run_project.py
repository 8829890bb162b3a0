"""Load a legacy .sb2 project and run it headless for a number of ticks.

Usage:
    python run_project.py project.sb2 [--ticks N] [--budget-ms MS] [--dump] [--no-flag]
"""

import argparse
import sys

from scratchvm.constants import TICK_PERIOD, WORK_BUDGET
from scratchvm.errors import ScratchVMError
from scratchvm.project_io import LoadResult, open_project
from scratchvm.runtime import RuntimeHandle, VirtualMachine
from scratchvm.scheduler import Scheduler
from scratchvm.script_text import format_sprite
from scratchvm.utils import to_text


def error(msg: str) -> None:
    """Print an error message and exit."""
    print(f"Error: {msg}", file=sys.stderr)
    sys.exit(1)


def dump_scripts(result: LoadResult) -> None:
    for sprite in result.program.sprites:
        print(f"== {sprite.name} ==")
        text = format_sprite(sprite)
        print(text if text else "(no scripts)")


def print_summary(handle: RuntimeHandle) -> None:
    print(f"Ran {handle.tick_count} tick{'s' if handle.tick_count != 1 else ''}, "
          f"{len(handle.threads)} thread{'s' if len(handle.threads) != 1 else ''} still running")
    for target in handle.targets:
        label = f"{target.name} (clone)" if target.is_clone else target.name
        if target.is_stage:
            print(label)
        else:
            print(f"{label}: x={to_text(round(target.x, 2))} y={to_text(round(target.y, 2))} "
                  f"direction={to_text(round(target.direction, 2))}")
        for name, variable in target.variables.items():
            print(f"    {name} = {to_text(variable.value)}")
        for name, values in target.lists.items():
            print(f"    {name} = [{', '.join(to_text(v) for v in values.values)}]")


def run(path: str, ticks: int, budget: float, dump: bool, press_flag: bool) -> None:
    try:
        result = open_project(path)
    except ScratchVMError as e:
        error(str(e))
        return

    result.diagnostics.print_all()
    print(f"Loaded {path}: {result.diagnostics.summary()}")

    if dump:
        dump_scripts(result)

    vm = VirtualMachine(Scheduler(work_budget=budget))
    vm.stage_program(result.program, start=press_flag)
    now = 0.0
    try:
        for _ in range(ticks):
            vm.tick(now)
            now += TICK_PERIOD
    finally:
        vm.shutdown()

    handle = vm.handle
    if handle is None:
        return
    handle.diagnostics.print_all()
    print_summary(handle)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a legacy Scratch .sb2 project without rendering.")
    parser.add_argument("input", help="Path to the .sb2 archive or project.json file")
    parser.add_argument("--ticks", type=int, default=30, help="Number of ticks to run")
    parser.add_argument("--budget-ms", type=float, default=WORK_BUDGET * 1000,
                        help="Work budget per tick in milliseconds")
    parser.add_argument("--dump", action="store_true", help="Print every script as text before running")
    parser.add_argument("--no-flag", action="store_true", help="Do not press the green flag")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if args.ticks < 0:
        error("--ticks must not be negative")
    run(args.input, args.ticks, args.budget_ms / 1000.0, args.dump, not args.no_flag)


if __name__ == "__main__":
    main()
