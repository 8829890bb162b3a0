"""In-memory tree of a legacy (Scratch 2.0) ``project.json`` document.

The stage is the document root; sprites, watchers ("monitors") and
stage-level list watchers share the untyped ``children`` array and are told
apart by the keys they carry.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .block_parser import decode_top_level_item
from .block_tree import TopLevelItem
from .constants import STAGE_NAME
from .diagnostics import DiagnosticCollector, DiagnosticContext
from .errors import DecodeError


@dataclass
class LegacyVariable:
    name: str
    value: Any
    is_persistent: bool = False


@dataclass
class LegacyList:
    name: str
    contents: List[Any] = field(default_factory=list)
    is_persistent: bool = False


@dataclass
class LegacyCostume:
    costume_name: str
    base_layer_id: int
    base_layer_md5: str
    bitmap_resolution: int = 1
    rotation_center_x: float = 0.0
    rotation_center_y: float = 0.0


@dataclass
class LegacySound:
    sound_name: str
    sound_id: int
    md5: str
    sample_count: int = 0
    rate: int = 0
    format: str = ""


@dataclass
class LegacyTarget:
    """Fields shared by the stage and every sprite."""
    name: str
    variables: List[LegacyVariable] = field(default_factory=list)
    lists: List[LegacyList] = field(default_factory=list)
    sounds: List[LegacySound] = field(default_factory=list)
    costumes: List[LegacyCostume] = field(default_factory=list)
    current_costume_index: int = 0
    scripts: List[TopLevelItem] = field(default_factory=list)


@dataclass
class LegacyStage(LegacyTarget):
    pen_layer_md5: str = ""
    pen_layer_id: int = 0
    tempo_bpm: float = 60.0
    video_alpha: float = 0.5


@dataclass
class LegacySprite(LegacyTarget):
    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0  # scaling factor: 1.0 is 100%
    direction: float = 90.0
    rotation_style: str = "normal"
    is_draggable: bool = False
    index_in_library: int = 0
    is_visible: bool = True
    sprite_info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LegacyMonitor:
    target: str
    cmd: str
    param: Any = None
    color: int = 0
    label: str = ""
    mode: int = 1
    slider_min: float = 0.0
    slider_max: float = 100.0
    is_discrete: bool = True
    x: float = 0.0
    y: float = 0.0
    visible: bool = False


@dataclass
class LegacyListEntity:
    """A list watcher duplicated into ``children``; the list itself lives on its target."""
    name: str
    contents: List[Any] = field(default_factory=list)
    is_persistent: bool = False


@dataclass
class LegacyUnknownChild:
    raw: Any


StageChild = Union[LegacySprite, LegacyMonitor, LegacyListEntity, LegacyUnknownChild]


@dataclass
class LegacyProject:
    stage: LegacyStage
    children: List[StageChild] = field(default_factory=list)
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def sprites(self) -> List[LegacySprite]:
        return [child for child in self.children if isinstance(child, LegacySprite)]


def _number(raw: Dict[str, Any], key: str, default: float) -> Any:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return value


def _flag(raw: Dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key, default)
    return value if isinstance(value, bool) else default


def _entries(raw: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = raw.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"expected '{key}' to be an array", f"got {type(value).__name__}")
    return [entry for entry in value if isinstance(entry, dict)]


def parse_variables(raw: Dict[str, Any]) -> List[LegacyVariable]:
    return [
        LegacyVariable(
            name=str(entry.get("name", "variable")),
            value=entry.get("value", 0),
            is_persistent=_flag(entry, "isPersistent", False),
        )
        for entry in _entries(raw, "variables")
    ]


def parse_lists(raw: Dict[str, Any]) -> List[LegacyList]:
    result: List[LegacyList] = []
    for entry in _entries(raw, "lists"):
        contents = entry.get("contents", [])
        result.append(LegacyList(
            name=str(entry.get("listName", "list")),
            contents=list(contents) if isinstance(contents, list) else [],
            is_persistent=_flag(entry, "isPersistent", False),
        ))
    return result


def parse_costumes(raw: Dict[str, Any]) -> List[LegacyCostume]:
    return [
        LegacyCostume(
            costume_name=str(entry.get("costumeName", "costume")),
            base_layer_id=int(_number(entry, "baseLayerID", -1)),
            base_layer_md5=str(entry.get("baseLayerMD5", "")),
            bitmap_resolution=int(_number(entry, "bitmapResolution", 1)),
            rotation_center_x=_number(entry, "rotationCenterX", 0),
            rotation_center_y=_number(entry, "rotationCenterY", 0),
        )
        for entry in _entries(raw, "costumes")
    ]


def parse_sounds(raw: Dict[str, Any]) -> List[LegacySound]:
    return [
        LegacySound(
            sound_name=str(entry.get("soundName", "sound")),
            sound_id=int(_number(entry, "soundID", -1)),
            md5=str(entry.get("md5", "")),
            sample_count=int(_number(entry, "sampleCount", 0)),
            rate=int(_number(entry, "rate", 0)),
            format=str(entry.get("format", "")),
        )
        for entry in _entries(raw, "sounds")
    ]


def parse_scripts(raw: Dict[str, Any], diag_ctx: Optional[DiagnosticContext] = None) -> List[TopLevelItem]:
    """Decode a target's scripts, dropping any script that fails to decode."""
    scripts = raw.get("scripts", [])
    if scripts is None:
        return []
    if not isinstance(scripts, list):
        raise DecodeError("expected 'scripts' to be an array", f"got {type(scripts).__name__}")

    items: List[TopLevelItem] = []
    for index, entry in enumerate(scripts):
        try:
            items.append(decode_top_level_item(entry))
        except DecodeError as err:
            if diag_ctx is not None:
                diag_ctx.error(f"Dropped undecodable script: {err.message}", index, str(err))
    return items


def _target_fields(raw: Dict[str, Any], diag_ctx: Optional[DiagnosticContext]) -> Dict[str, Any]:
    return {
        "name": raw["objName"],
        "variables": parse_variables(raw),
        "lists": parse_lists(raw),
        "sounds": parse_sounds(raw),
        "costumes": parse_costumes(raw),
        "current_costume_index": int(_number(raw, "currentCostumeIndex", 0)),
        "scripts": parse_scripts(raw, diag_ctx),
    }


def parse_sprite(raw: Dict[str, Any], diag_ctx: Optional[DiagnosticContext] = None) -> LegacySprite:
    sprite_info = raw.get("spriteInfo", {})
    return LegacySprite(
        x=_number(raw, "scratchX", 0),
        y=_number(raw, "scratchY", 0),
        scale=_number(raw, "scale", 1),
        direction=_number(raw, "direction", 90),
        rotation_style=str(raw.get("rotationStyle", "normal")),
        is_draggable=_flag(raw, "isDraggable", False),
        index_in_library=int(_number(raw, "indexInLibrary", 0)),
        is_visible=_flag(raw, "visible", True),
        sprite_info=sprite_info if isinstance(sprite_info, dict) else {},
        **_target_fields(raw, diag_ctx),
    )


def parse_monitor(raw: Dict[str, Any]) -> LegacyMonitor:
    return LegacyMonitor(
        target=str(raw.get("target", "")),
        cmd=str(raw.get("cmd", "")),
        param=raw.get("param"),
        color=int(_number(raw, "color", 0)),
        label=str(raw.get("label", "")),
        mode=int(_number(raw, "mode", 1)),
        slider_min=_number(raw, "sliderMin", 0),
        slider_max=_number(raw, "sliderMax", 100),
        is_discrete=_flag(raw, "isDiscrete", True),
        x=_number(raw, "x", 0),
        y=_number(raw, "y", 0),
        visible=_flag(raw, "visible", False),
    )


def parse_child(raw: Any, collector: Optional[DiagnosticCollector] = None) -> StageChild:
    """Classify one entry of the stage's ``children`` array by the keys it carries."""
    if not isinstance(raw, dict):
        return LegacyUnknownChild(raw)
    if isinstance(raw.get("objName"), str):
        diag_ctx = collector.context(raw["objName"]) if collector is not None else None
        return parse_sprite(raw, diag_ctx)
    if "listName" in raw:
        contents = raw.get("contents", [])
        return LegacyListEntity(
            name=str(raw["listName"]),
            contents=list(contents) if isinstance(contents, list) else [],
            is_persistent=_flag(raw, "isPersistent", False),
        )
    if "cmd" in raw:
        return parse_monitor(raw)
    return LegacyUnknownChild(raw)


def parse_project(document: Any, collector: Optional[DiagnosticCollector] = None) -> LegacyProject:
    """Build the legacy tree from an already-parsed ``project.json`` document."""
    if not isinstance(document, dict):
        raise DecodeError("expected the stage object at the document root", f"got {type(document).__name__}")
    if not isinstance(document.get("objName", STAGE_NAME), str):
        raise DecodeError("could not read stage name", repr(document.get("objName")))
    document = dict(document)
    document.setdefault("objName", STAGE_NAME)

    children = document.get("children", [])
    if children is None:
        children = []
    if not isinstance(children, list):
        raise DecodeError("expected 'children' to be an array", f"got {type(children).__name__}")

    stage_ctx = collector.context(document["objName"]) if collector is not None else None
    stage = LegacyStage(
        pen_layer_md5=str(document.get("penLayerMD5", "")),
        pen_layer_id=int(_number(document, "penLayerID", 0)),
        tempo_bpm=_number(document, "tempoBPM", 60),
        video_alpha=_number(document, "videoAlpha", 0.5),
        **_target_fields(document, stage_ctx),
    )
    info = document.get("info", {})
    return LegacyProject(
        stage=stage,
        children=[parse_child(child, collector) for child in children],
        info=info if isinstance(info, dict) else {},
    )


def decode_legacy_project(
    json_bytes: Union[bytes, str],
    collector: Optional[DiagnosticCollector] = None,
) -> LegacyProject:
    """Decode ``project.json`` bytes into a legacy project tree.

    Scripts that fail to decode are dropped (and reported to ``collector``);
    a document whose overall shape is wrong raises :class:`DecodeError`.
    """
    try:
        document = json.loads(json_bytes)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError("project.json is not valid JSON", str(exc)) from exc
    return parse_project(document, collector)
