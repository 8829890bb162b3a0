"""Cooperative tick scheduler.

Each tick anchors a work budget on the injected clock, starts hat scripts
for pending triggers, then round-robins runnable threads one block-step at
a time. The budget is polled after every step: a step that overruns is
allowed to finish, but no further step starts in that tick.
"""

import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, List, Optional, Set, Tuple

from .block_tree import BlockNode, Literal
from .constants import WORK_BUDGET
from .execution import BlockExecutor, StepResult
from .opcodes import EDGE_HAT_OPCODES, HAT_OPCODES
from .runtime import RuntimeHandle, Target, Trigger
from .threads import Thread, ThreadState
from .utils import to_number, to_text


@dataclass
class TickReport:
    steps: int = 0
    stepped_threads: int = 0
    finished: int = 0
    faulted: int = 0
    elapsed: float = 0.0
    budget_exhausted: bool = False


def _hat_literal(hat: BlockNode, position: int, default: Any) -> Any:
    if position < len(hat.arguments) and isinstance(hat.arguments[position], Literal):
        return hat.arguments[position].value
    return default


def _matches(trigger: Trigger, target: Target, kind: str, hat_value: Optional[str]) -> bool:
    if trigger.kind != kind:
        return False
    if trigger.target is not None and trigger.target is not target:
        return False
    if trigger.value is None:
        return True
    return to_text(hat_value or "").lower() == trigger.value.lower()


def _running_scripts(handle: RuntimeHandle) -> Set[Tuple[str, int]]:
    return {(t.target.target_id, t.script_index) for t in handle.threads if not t.finished}


def _sensor_value(handle: RuntimeHandle, sensor: str) -> float:
    if sensor.lower() == "timer":
        start = handle.timer_start if handle.timer_start is not None else 0.0
        return handle.now - start
    # Loudness and video motion are not measured
    return 0


def start_hats(handle: RuntimeHandle) -> List[Thread]:
    """Create a thread for every hat script triggered since the last tick.

    A script that already has a live thread on its target is not started twice.
    """
    triggers, handle.pending_triggers = handle.pending_triggers, []
    running = _running_scripts(handle)
    started: List[Thread] = []
    for target in list(handle.targets):
        for index, item in enumerate(target.sprite.scripts):
            hat = item.hat
            if hat is None:
                continue
            key = (target.target_id, index)
            if hat.opcode in EDGE_HAT_OPCODES:
                sensor = to_text(_hat_literal(hat, 0, ""))
                threshold = to_number(_hat_literal(hat, 1, 0))
                active = _sensor_value(handle, sensor) > threshold
                fired = active and not handle.hat_edges.get(key, False)
                handle.hat_edges[key] = active
                if not fired:
                    continue
            else:
                kind = HAT_OPCODES.get(hat.opcode)
                if kind is None:
                    continue
                hat_value = _hat_literal(hat, 0, None)
                if not any(_matches(trigger, target, kind, hat_value) for trigger in triggers):
                    continue
            if key in running:
                continue
            thread = Thread(handle, target, item, index)
            handle.threads.append(thread)
            running.add(key)
            started.append(thread)
    return started


class Scheduler:
    def __init__(self, work_budget: float = WORK_BUDGET,
                 clock: Callable[[], float] = time.perf_counter,
                 executor: Optional[BlockExecutor] = None) -> None:
        self.work_budget = work_budget
        self.clock = clock
        self.executor = executor if executor is not None else BlockExecutor()

    def _fault(self, handle: RuntimeHandle, thread: Thread, err: Exception) -> None:
        thread.stop()
        ctx = handle.diagnostics.context(thread.target.name)
        ctx.error(f"Thread stopped by a fault: {err}", thread.script_index)

    def tick(self, handle: RuntimeHandle, now: Optional[float] = None) -> TickReport:
        """Run one tick of ``handle`` and report what happened.

        ``now`` is the runtime clock seen by timers and waits; it defaults to
        the scheduler clock.
        """
        anchor = self.clock()
        handle.now = now if now is not None else anchor
        if handle.timer_start is None:
            handle.timer_start = handle.now
        report = TickReport()

        start_hats(handle)

        queue: Deque[Thread] = deque()
        for thread in handle.threads:
            if thread.finished:
                continue
            if thread.wake_time is not None and thread.wake_time > handle.now:
                thread.state = ThreadState.WAITING
                continue
            thread.state = ThreadState.RUNNING
            queue.append(thread)

        stepped: Set[str] = set()
        while queue:
            if self.clock() - anchor > self.work_budget:
                report.budget_exhausted = True
                break
            thread = queue.popleft()
            if thread.finished:
                continue
            thread.state = ThreadState.RUNNING
            stepped.add(thread.thread_id)
            report.steps += 1
            try:
                result = self.executor.step(thread)
            except Exception as e:
                self._fault(handle, thread, e)
                report.faulted += 1
                continue
            if result is StepResult.DONE or thread.finished:
                thread.stop()
            elif result is StepResult.WAIT:
                thread.state = ThreadState.WAITING
            elif result is StepResult.YIELD:
                thread.state = ThreadState.YIELDED
                queue.append(thread)
            else:
                queue.append(thread)

        # Threads stopped from outside the rotation count as finished too
        done = [thread for thread in handle.threads if thread.finished]
        report.finished = len(done) - report.faulted
        handle.threads = [thread for thread in handle.threads if not thread.finished]
        for thread in queue:
            if not thread.finished:
                thread.state = ThreadState.YIELDED
        handle.tick_count += 1
        report.stepped_threads = len(stepped)
        report.elapsed = self.clock() - anchor
        return report


def tick(handle: RuntimeHandle, now: Optional[float] = None) -> TickReport:
    """Run one tick with the default budget and clock."""
    return Scheduler().tick(handle, now)
