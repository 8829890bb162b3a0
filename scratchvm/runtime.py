"""Running state of an installed project.

Terminology:
- A :class:`Sprite` is fixed program data: scripts, costumes, sounds. The
  stage is a sprite for this purpose.
- A :class:`Target` is a running instance of a sprite. Position, variables,
  lists and threads belong to the target, not the sprite. Clones are targets
  sharing their original's sprite.
- A :class:`RuntimeHandle` is one installed generation: every sprite and
  target spawned from one canonical program. Loading another project builds
  a new handle; a live handle is never patched with data from a new load.
"""

import copy
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import cached_property
from itertools import count
from typing import Any, Callable, Dict, List, Optional, Tuple

from .block_tree import ProcedureDefinition, TopLevelItem
from .constants import MAX_CLONES
from .diagnostics import DiagnosticCollector
from .program import CanonicalProgram, Costume, ListData, RotationStyle, Sound, Variable
from .threads import Thread
from .utils import gen_id

_generations = count(1)


@dataclass(frozen=True, eq=False)
class Sprite:
    """Immutable program shared by every target spawned from it."""
    name: str
    scripts: Tuple[TopLevelItem, ...] = ()
    sounds: Tuple[Sound, ...] = ()
    costumes: Tuple[Costume, ...] = ()
    is_stage: bool = False

    @cached_property
    def procedures(self) -> Dict[str, ProcedureDefinition]:
        """Procedure definitions by spec; the first definition of a spec wins."""
        found: Dict[str, ProcedureDefinition] = {}
        for item in self.scripts:
            if isinstance(item.stack, ProcedureDefinition):
                found.setdefault(item.stack.spec, item.stack)
        return found


@dataclass(eq=False)
class Target:
    sprite: Sprite
    x: float = 0.0
    y: float = 0.0
    scale: float = 100.0
    direction: float = 90.0
    rotation_style: RotationStyle = RotationStyle.NORMAL
    draggable: bool = False
    visible: bool = True
    variables: Dict[str, Variable] = field(default_factory=dict)
    lists: Dict[str, ListData] = field(default_factory=dict)
    current_costume: int = 0
    is_clone: bool = False
    target_id: str = field(default_factory=lambda: gen_id("target"))

    @property
    def name(self) -> str:
        return self.sprite.name

    @property
    def is_stage(self) -> bool:
        return self.sprite.is_stage

    def clone(self) -> "Target":
        """Return a new target running the same sprite with a copy of this state."""
        return Target(
            sprite=self.sprite,
            x=self.x,
            y=self.y,
            scale=self.scale,
            direction=self.direction,
            rotation_style=self.rotation_style,
            draggable=self.draggable,
            visible=self.visible,
            variables=copy.deepcopy(self.variables),
            lists=copy.deepcopy(self.lists),
            current_costume=self.current_costume,
            is_clone=True,
        )


@dataclass
class Trigger:
    """A pending event for the hat pass: ``kind`` is a hat trigger kind."""
    kind: str
    value: Optional[str] = None
    target: Optional[Target] = None


class RuntimeHandle:
    """One installed generation of a project."""

    def __init__(self, sprites: List[Sprite], targets: List[Target]) -> None:
        self.generation = next(_generations)
        self.sprites = sprites
        self.targets = targets
        self.threads: List[Thread] = []
        self.pending_triggers: List[Trigger] = []
        self.diagnostics = DiagnosticCollector()
        self.now = 0.0
        self.timer_start: Optional[float] = None
        self.tick_count = 0
        # Edge state of condition hats, keyed by (target id, script index)
        self.hat_edges: Dict[Tuple[str, int], bool] = {}

    @property
    def stage(self) -> Optional[Target]:
        return next((t for t in self.targets if t.is_stage), None)

    def find_target(self, name: str) -> Optional[Target]:
        """Return the original (non-clone) target running the sprite ``name``."""
        return next((t for t in self.targets if t.name == name and not t.is_clone), None)

    def trigger(self, kind: str, value: Optional[str] = None, target: Optional[Target] = None) -> None:
        self.pending_triggers.append(Trigger(kind, value, target))

    def green_flag(self) -> None:
        self.stop_all()
        self.trigger("green_flag")

    def broadcast(self, name: str) -> None:
        self.trigger("broadcast", name)

    def key_pressed(self, key: str) -> None:
        self.trigger("key", key)

    def clicked(self, target: Target) -> None:
        self.trigger("click", target=target)

    def scene_started(self, name: str) -> None:
        self.trigger("scene", name)

    def threads_for(self, target: Target) -> List[Thread]:
        return [thread for thread in self.threads if thread.target is target and not thread.finished]

    def create_clone(self, original: Target) -> Optional[Target]:
        if sum(1 for t in self.targets if t.is_clone) >= MAX_CLONES or original.is_stage:
            return None
        clone = original.clone()
        self.targets.insert(self.targets.index(original) + 1, clone)
        self.trigger("clone", target=clone)
        return clone

    def _forget_target(self, target: Target) -> None:
        self.targets.remove(target)
        for key in [key for key in self.hat_edges if key[0] == target.target_id]:
            del self.hat_edges[key]

    def remove_target(self, target: Target) -> None:
        for thread in self.threads_for(target):
            thread.stop()
        if target in self.targets:
            self._forget_target(target)

    def stop_all(self) -> None:
        for thread in self.threads:
            thread.stop()
        for clone in [t for t in self.targets if t.is_clone]:
            self._forget_target(clone)

    def lookup_variable(self, target: Target, name: str) -> Optional[Variable]:
        if name in target.variables:
            return target.variables[name]
        stage = self.stage
        if stage is not None and name in stage.variables:
            return stage.variables[name]
        return None

    def lookup_list(self, target: Target, name: str) -> Optional[ListData]:
        if name in target.lists:
            return target.lists[name]
        stage = self.stage
        if stage is not None and name in stage.lists:
            return stage.lists[name]
        return None


def install(program: CanonicalProgram) -> RuntimeHandle:
    """Spawn one target per sprite archetype into a new generation."""
    sprites: List[Sprite] = []
    targets: List[Target] = []
    for archetype in program.sprites:
        sprite = Sprite(
            name=archetype.name,
            scripts=tuple(archetype.scripts),
            sounds=tuple(archetype.sounds),
            costumes=tuple(archetype.costumes),
            is_stage=archetype.is_stage,
        )
        sprites.append(sprite)
        targets.append(Target(
            sprite=sprite,
            x=archetype.x,
            y=archetype.y,
            scale=archetype.scale,
            direction=archetype.direction,
            rotation_style=archetype.rotation_style,
            draggable=archetype.is_draggable,
            visible=archetype.is_visible,
            variables=copy.deepcopy(archetype.variables),
            lists=copy.deepcopy(archetype.lists),
            current_costume=archetype.current_costume,
        ))
    return RuntimeHandle(sprites, targets)


class VirtualMachine:
    """Owns the active generation and swaps in new ones between ticks.

    A program staged with :meth:`stage_program` (or produced by a background
    load) is installed at the start of the next :meth:`tick`, so no tick ever
    sees targets from two projects.
    """

    def __init__(self, scheduler: Any = None) -> None:
        if scheduler is None:
            from .scheduler import Scheduler
            scheduler = Scheduler()
        self.scheduler = scheduler
        self.handle: Optional[RuntimeHandle] = None
        self._staged: Optional[CanonicalProgram] = None
        self._loading: Optional[Future] = None
        self._pool: Optional[ThreadPoolExecutor] = None
        self.start_on_install = False
        self.load_error: Optional[BaseException] = None

    def stage_program(self, program: CanonicalProgram, start: bool = False) -> None:
        self._staged = program
        self.start_on_install = start

    def load_in_background(self, loader: Callable[[], CanonicalProgram], start: bool = False) -> Future:
        """Run ``loader`` on a worker; its program is installed at the next tick after it completes."""
        self.cancel_pending_load()
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="project-load")
        self._loading = self._pool.submit(loader)
        self.start_on_install = start
        return self._loading

    def cancel_pending_load(self) -> None:
        """Abandon a staged or in-flight load; the running generation is untouched."""
        self._staged = None
        if self._loading is not None:
            self._loading.cancel()
            self._loading = None

    def _take_ready_program(self) -> Optional[CanonicalProgram]:
        if self._loading is not None and self._loading.done():
            future, self._loading = self._loading, None
            if not future.cancelled():
                # A failed load leaves the running generation in place
                self.load_error = future.exception()
                if self.load_error is None:
                    self._staged = future.result()
        program, self._staged = self._staged, None
        return program

    def install_pending(self) -> bool:
        program = self._take_ready_program()
        if program is None:
            return False
        self.handle = install(program)
        if self.start_on_install:
            self.handle.green_flag()
        return True

    def tick(self, now: Optional[float] = None) -> Any:
        self.install_pending()
        if self.handle is None:
            return None
        return self.scheduler.tick(self.handle, now)

    def green_flag(self) -> None:
        if self.handle is not None:
            self.handle.green_flag()

    def shutdown(self) -> None:
        self.cancel_pending_load()
        if self._pool is not None:
            self._pool.shutdown(wait=False)
            self._pool = None
