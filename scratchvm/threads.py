"""Threads: in-progress executions of one script on one target."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .block_tree import BlockNode, TopLevelItem
from .utils import gen_id


class ThreadState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    YIELDED = "yielded"
    # Sleeping until a later tick (timed wait or wait-until)
    WAITING = "waiting"
    FINISHED = "finished"


@dataclass
class Frame:
    """A position inside one block sequence.

    ``loop`` frames are loop bodies: when they run out, the loop block that
    pushed them is visited again. ``counters`` holds per-block state such as
    remaining repeat counts and wait deadlines, keyed by block index.
    """
    blocks: Sequence[BlockNode]
    index: int = 0
    loop: bool = False
    warp: bool = False
    params: Optional[Dict[str, Any]] = None
    counters: Dict[int, Any] = field(default_factory=dict)

    @property
    def current(self) -> Optional[BlockNode]:
        if self.index < len(self.blocks):
            return self.blocks[self.index]
        return None


class Thread:
    def __init__(self, runtime: Any, target: Any, item: TopLevelItem, script_index: int = 0) -> None:
        self.thread_id = gen_id("thread")
        self.runtime = runtime
        self.target = target
        self.item = item
        self.script_index = script_index
        self.state = ThreadState.IDLE
        self.frames: List[Frame] = [Frame(item.blocks)]
        self.steps = 0
        # Runtime clock value a timed wait sleeps until
        self.wake_time: Optional[float] = None

    def __repr__(self) -> str:
        return f"Thread({self.thread_id}, {self.target.name!r}, script {self.script_index}, {self.state.value})"

    @property
    def finished(self) -> bool:
        return self.state is ThreadState.FINISHED

    @property
    def top(self) -> Frame:
        return self.frames[-1]

    @property
    def warped(self) -> bool:
        return bool(self.frames) and self.top.warp

    @property
    def call_depth(self) -> int:
        return sum(1 for frame in self.frames if frame.params is not None)

    def push(self, blocks: Sequence[BlockNode], loop: bool = False, warp: bool = False,
             params: Optional[Dict[str, Any]] = None) -> None:
        self.frames.append(Frame(blocks, loop=loop, warp=warp or self.warped, params=params))

    def param(self, name: str) -> Any:
        """Value of the innermost procedure parameter called ``name``."""
        for frame in reversed(self.frames):
            if frame.params is not None:
                return frame.params.get(name, 0)
        return 0

    def stop(self) -> None:
        self.frames.clear()
        self.state = ThreadState.FINISHED
