"""The canonical, version-independent program model.

Every source format converts into a :class:`CanonicalProgram`. It is frozen
program data: installing it into a runtime copies the mutable parts
(transform, variables, lists) into fresh targets and shares the rest.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .assets import AssetHandle
from .block_tree import TopLevelItem


class RotationStyle(Enum):
    NORMAL = "normal"
    LEFT_RIGHT = "leftRight"
    NONE = "none"

    @classmethod
    def from_legacy(cls, name: str) -> Optional["RotationStyle"]:
        for style in cls:
            if style.value == name:
                return style
        return None


@dataclass
class Variable:
    value: Any
    is_cloud: bool = False


@dataclass
class ListData:
    values: List[Any] = field(default_factory=list)
    is_cloud: bool = False


@dataclass
class Costume:
    name: str
    asset: Optional[AssetHandle]
    bitmap_resolution: int = 1
    rotation_center_x: float = 0.0
    rotation_center_y: float = 0.0
    layer_index: int = 0


@dataclass
class Sound:
    name: str
    asset: Optional[AssetHandle]
    format: str = ""
    sample_rate: int = 0
    sample_count: int = 0
    sound_index: int = 0


@dataclass
class SpriteArchetype:
    """Everything needed to spawn one target: its program and its initial state."""
    name: str
    scripts: List[TopLevelItem] = field(default_factory=list)
    sounds: List[Sound] = field(default_factory=list)
    costumes: List[Costume] = field(default_factory=list)
    x: float = 0.0
    y: float = 0.0
    scale: float = 100.0  # percentage
    direction: float = 90.0
    rotation_style: RotationStyle = RotationStyle.NORMAL
    is_draggable: bool = False
    is_visible: bool = True
    variables: Dict[str, Variable] = field(default_factory=dict)
    lists: Dict[str, ListData] = field(default_factory=dict)
    current_costume: int = 0
    is_stage: bool = False


@dataclass
class CanonicalProgram:
    """Sprites in install order; the stage, when present, comes first."""
    sprites: List[SpriteArchetype] = field(default_factory=list)

    @property
    def stage(self) -> Optional[SpriteArchetype]:
        if self.sprites and self.sprites[0].is_stage:
            return self.sprites[0]
        return None

    def sprite(self, name: str) -> Optional[SpriteArchetype]:
        return next((s for s in self.sprites if s.name == name), None)
