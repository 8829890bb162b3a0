"""Conversion of the legacy project tree into the canonical program model.

The stage converts first and always lands on the default stage transform;
every sprite child follows in document order with its own transform. List
watchers and monitors in ``children`` are not targets and are dropped.
Cosmetic problems fall back to a default value and are reported; they never
abort the load.
"""

from typing import Any, Dict, List, Optional, Union

from .assets import AssetCache, AssetResolver, split_asset_key
from .block_tree import is_literal_value
from .constants import STAGE_DEFAULT_TRANSFORM
from .diagnostics import DiagnosticCollector, DiagnosticContext
from .errors import AssetResolutionError, ConversionError
from .legacy import (
    LegacyCostume,
    LegacyList,
    LegacyListEntity,
    LegacyMonitor,
    LegacyProject,
    LegacySound,
    LegacySprite,
    LegacyTarget,
    LegacyVariable,
    StageChild,
)
from .program import (
    CanonicalProgram,
    Costume,
    ListData,
    RotationStyle,
    Sound,
    SpriteArchetype,
    Variable,
)


def _literal_or_default(value: Any, default: Any, what: str, diag_ctx: DiagnosticContext) -> Any:
    if is_literal_value(value):
        return value
    diag_ctx.warning(f"Replaced non-literal {what} {value!r} with {default!r}")
    return default


def convert_variables(entries: List[LegacyVariable], diag_ctx: DiagnosticContext) -> Dict[str, Variable]:
    variables: Dict[str, Variable] = {}
    for entry in entries:
        value = _literal_or_default(entry.value, 0, f"value of variable '{entry.name}'", diag_ctx)
        variables[entry.name] = Variable(value=value, is_cloud=entry.is_persistent)
    return variables


def convert_lists(entries: List[LegacyList], diag_ctx: DiagnosticContext) -> Dict[str, ListData]:
    lists: Dict[str, ListData] = {}
    for entry in entries:
        values = [
            _literal_or_default(item, "", f"item of list '{entry.name}'", diag_ctx)
            for item in entry.contents
        ]
        lists[entry.name] = ListData(values=values, is_cloud=entry.is_persistent)
    return lists


def convert_costume(costume: LegacyCostume, assets: AssetCache, diag_ctx: DiagnosticContext) -> Costume:
    handle = None
    try:
        handle = assets.resolve_md5ext(costume.base_layer_md5)
    except ConversionError as err:
        diag_ctx.warning(f"Costume '{costume.costume_name}' has no usable asset key: {err}")
    except AssetResolutionError as err:
        diag_ctx.error(f"Could not resolve costume '{costume.costume_name}': {err}")
    return Costume(
        name=costume.costume_name,
        asset=handle,
        bitmap_resolution=costume.bitmap_resolution,
        rotation_center_x=costume.rotation_center_x,
        rotation_center_y=costume.rotation_center_y,
        layer_index=costume.base_layer_id,
    )


def convert_sound(sound: LegacySound, assets: AssetCache, diag_ctx: DiagnosticContext) -> Sound:
    handle = None
    try:
        handle = assets.resolve_md5ext(sound.md5)
    except ConversionError as err:
        diag_ctx.warning(f"Sound '{sound.sound_name}' has no usable asset key: {err}")
    except AssetResolutionError as err:
        diag_ctx.error(f"Could not resolve sound '{sound.sound_name}': {err}")
    return Sound(
        name=sound.sound_name,
        asset=handle,
        format=sound.format,
        sample_rate=sound.rate,
        sample_count=sound.sample_count,
        sound_index=sound.sound_id,
    )


def _common_fields(target: LegacyTarget, assets: AssetCache, diag_ctx: DiagnosticContext) -> Dict[str, Any]:
    costumes = [convert_costume(c, assets, diag_ctx) for c in target.costumes]
    current = target.current_costume_index
    if current < 0 or (current >= len(costumes) and costumes):
        diag_ctx.warning(f"Costume index {current} is out of range; using costume 0")
        current = 0
    elif not costumes:
        current = 0
    return {
        "name": target.name,
        "scripts": list(target.scripts),
        "sounds": [convert_sound(s, assets, diag_ctx) for s in target.sounds],
        "costumes": costumes,
        "variables": convert_variables(target.variables, diag_ctx),
        "lists": convert_lists(target.lists, diag_ctx),
        "current_costume": current,
    }


def convert_stage(project: LegacyProject, assets: AssetCache, diag_ctx: DiagnosticContext) -> SpriteArchetype:
    defaults = STAGE_DEFAULT_TRANSFORM
    return SpriteArchetype(
        x=defaults["x"],
        y=defaults["y"],
        scale=defaults["scale"],
        direction=defaults["direction"],
        rotation_style=RotationStyle(defaults["rotation_style"]),
        is_draggable=defaults["draggable"],
        is_visible=defaults["visible"],
        is_stage=True,
        **_common_fields(project.stage, assets, diag_ctx),
    )


def convert_sprite(sprite: LegacySprite, assets: AssetCache, diag_ctx: DiagnosticContext) -> SpriteArchetype:
    rotation_style = RotationStyle.from_legacy(sprite.rotation_style)
    if rotation_style is None:
        diag_ctx.warning(f"Unknown rotation style '{sprite.rotation_style}'; using 'normal'")
        rotation_style = RotationStyle.NORMAL
    return SpriteArchetype(
        x=sprite.x,
        y=sprite.y,
        scale=sprite.scale * 100.0,
        direction=sprite.direction,
        rotation_style=rotation_style,
        is_draggable=sprite.is_draggable,
        is_visible=sprite.is_visible,
        **_common_fields(sprite, assets, diag_ctx),
    )


def convert_child(
    child: StageChild,
    assets: AssetCache,
    collector: DiagnosticCollector,
) -> Optional[SpriteArchetype]:
    """Convert one ``children`` entry; monitors and list watchers yield ``None``."""
    if isinstance(child, LegacySprite):
        return convert_sprite(child, assets, collector.context(child.name))
    if isinstance(child, (LegacyMonitor, LegacyListEntity)):
        return None
    raise ConversionError("stage child has no canonical representation", repr(getattr(child, "raw", child))[:60])


def convert_to_canonical(
    project: LegacyProject,
    asset_resolver: Union[AssetResolver, AssetCache],
    collector: Optional[DiagnosticCollector] = None,
) -> CanonicalProgram:
    """Map a legacy project onto the canonical model.

    ``asset_resolver`` is called once per distinct ``(md5, extension)`` key;
    this function never touches asset bytes.
    """
    if collector is None:
        collector = DiagnosticCollector()
    assets = asset_resolver if isinstance(asset_resolver, AssetCache) else AssetCache(asset_resolver)

    stage_ctx = collector.context(project.stage.name)
    sprites = [convert_stage(project, assets, stage_ctx)]
    for index, child in enumerate(project.children):
        try:
            archetype = convert_child(child, assets, collector)
        except ConversionError as err:
            stage_ctx.warning(f"Skipped child {index}: {err}")
            continue
        if archetype is not None:
            sprites.append(archetype)
    return CanonicalProgram(sprites=sprites)


def asset_ids(project: LegacyProject) -> Dict[str, int]:
    """Map each ``<md5>.<ext>`` key to the first archive id recorded for it."""
    ids: Dict[str, int] = {}
    targets: List[LegacyTarget] = [project.stage] + project.sprites
    for target in targets:
        for costume in target.costumes:
            _record_id(ids, costume.base_layer_md5, costume.base_layer_id)
        for sound in target.sounds:
            _record_id(ids, sound.md5, sound.sound_id)
    return ids


def _record_id(ids: Dict[str, int], md5ext: str, asset_id: int) -> None:
    if asset_id < 0:
        return
    try:
        md5, ext = split_asset_key(md5ext)
    except ConversionError:
        return
    ids.setdefault(f"{md5}.{ext}", asset_id)
