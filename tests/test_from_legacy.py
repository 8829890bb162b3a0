from scratchvm.assets import AssetCache, AssetHandle, placeholder_resolver
from scratchvm.diagnostics import DiagnosticCollector, DiagnosticLevel
from scratchvm.errors import AssetResolutionError
from scratchvm.from_legacy import asset_ids, convert_to_canonical
from scratchvm.legacy import parse_project
from scratchvm.program import RotationStyle

from conftest import SOUND_MD5, sprite_document, stage_document


class RecordingResolver:
    def __init__(self):
        self.calls = []

    def __call__(self, content_key, extension):
        self.calls.append((content_key, extension))
        return AssetHandle(key=content_key, extension=extension)


def test_stage_first_with_default_transform(legacy_document):
    legacy_document.update({"scratchX": 99, "direction": 0})
    program = convert_to_canonical(parse_project(legacy_document), placeholder_resolver)

    stage = program.stage
    assert stage is program.sprites[0]
    assert stage.is_stage
    assert (stage.x, stage.y, stage.scale, stage.direction) == (0, 0, 100, 90)
    assert stage.rotation_style is RotationStyle.NORMAL
    assert stage.is_visible and not stage.is_draggable
    assert stage.variables["score"].value == 0
    assert stage.lists["items"].values == ["a", "b"]


def test_monitor_and_list_watcher_are_not_targets(legacy_document):
    program = convert_to_canonical(parse_project(legacy_document), placeholder_resolver)
    assert [s.name for s in program.sprites] == ["Stage", "Cat"]
    assert [s.name for s in program.sprites if not s.is_stage] == ["Cat"]


def test_sprite_transform_is_carried_verbatim(legacy_document):
    program = convert_to_canonical(parse_project(legacy_document), placeholder_resolver)
    cat = program.sprite("Cat")
    assert (cat.x, cat.y, cat.direction) == (10, -20, 45)
    assert cat.scale == 50.0
    assert cat.rotation_style is RotationStyle.LEFT_RIGHT
    assert cat.variables["speed"].value == 3
    assert cat.costumes[0].bitmap_resolution == 2
    assert cat.costumes[0].layer_index == 2
    assert len(cat.scripts) == 1


def test_shared_content_key_resolves_once(legacy_document, png_md5):
    resolver = RecordingResolver()
    program = convert_to_canonical(parse_project(legacy_document), resolver)

    stage_costume = program.stage.costumes[0]
    cat_costume = program.sprite("Cat").costumes[0]
    assert stage_costume.asset is cat_costume.asset
    assert resolver.calls == [(png_md5, "png"), (SOUND_MD5, "wav")]


def test_unknown_rotation_style_falls_back():
    document = stage_document(children=[sprite_document("Cat", rotationStyle="sideways")])
    collector = DiagnosticCollector()

    program = convert_to_canonical(parse_project(document), placeholder_resolver, collector)

    assert program.sprite("Cat").rotation_style is RotationStyle.NORMAL
    warnings = [d for d in collector.all_diagnostics if d.level == DiagnosticLevel.WARNING]
    assert any("sideways" in d.message for d in warnings)


def test_unknown_child_is_skipped_with_a_warning():
    document = stage_document(children=[{"penLayer": 1}, sprite_document("Cat")])
    collector = DiagnosticCollector()

    program = convert_to_canonical(parse_project(document), placeholder_resolver, collector)

    assert [s.name for s in program.sprites] == ["Stage", "Cat"]
    assert collector.has_warnings()
    assert not collector.has_errors()


def test_asset_failures_do_not_abort_siblings(legacy_document):
    def resolver(content_key, extension):
        if extension == "wav":
            raise AssetResolutionError("asset not found in archive", f"{content_key}.{extension}")
        return AssetHandle(key=content_key, extension=extension)

    collector = DiagnosticCollector()
    program = convert_to_canonical(parse_project(legacy_document), resolver, collector)

    assert program.stage.sounds[0].asset is None
    assert program.stage.costumes[0].asset is not None
    assert program.sprite("Cat").costumes[0].asset is not None
    assert collector.has_errors()


def test_malformed_asset_key_is_a_warning():
    document = stage_document(costumes=[{"costumeName": "blank", "baseLayerID": 0, "baseLayerMD5": "noextension"}])
    collector = DiagnosticCollector()

    program = convert_to_canonical(parse_project(document), placeholder_resolver, collector)

    assert program.stage.costumes[0].asset is None
    assert collector.has_warnings()


def test_costume_index_out_of_range():
    document = stage_document(children=[sprite_document(
        "Cat",
        currentCostumeIndex=4,
        costumes=[{"costumeName": "a", "baseLayerID": 0, "baseLayerMD5": "abc.png"}],
    )])
    collector = DiagnosticCollector()

    program = convert_to_canonical(parse_project(document), placeholder_resolver, collector)

    assert program.sprite("Cat").current_costume == 0
    assert collector.has_warnings()


def test_asset_cache_can_be_shared_between_loads(legacy_document):
    resolver = RecordingResolver()
    cache = AssetCache(resolver)
    first = convert_to_canonical(parse_project(legacy_document), cache)
    second = convert_to_canonical(parse_project(legacy_document), cache)

    assert first.stage.costumes[0].asset is second.stage.costumes[0].asset
    assert len(resolver.calls) == 2
    assert len(cache) == 2


def test_asset_ids_keep_first_archive_id(legacy_document, png_md5):
    ids = asset_ids(parse_project(legacy_document))
    assert ids == {f"{png_md5}.png": 0, f"{SOUND_MD5}.wav": 1}
