import hashlib
import io
import json
import zipfile
from typing import Any, Dict, List, Optional

import pytest
from PIL import Image

from scratchvm.assets import placeholder_resolver
from scratchvm.from_legacy import convert_to_canonical
from scratchvm.legacy import parse_project
from scratchvm.runtime import RuntimeHandle, install

SOUND_MD5 = "83a9787d4cb6f3b7632b4ddfebf74367"


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def stage_document(scripts: Optional[List[Any]] = None, children: Optional[List[Any]] = None, **fields: Any) -> Dict[str, Any]:
    document = {
        "objName": "Stage",
        "variables": [],
        "lists": [],
        "costumes": [],
        "sounds": [],
        "currentCostumeIndex": 0,
        "scripts": scripts or [],
        "children": children or [],
    }
    document.update(fields)
    return document


def sprite_document(name: str, scripts: Optional[List[Any]] = None, **fields: Any) -> Dict[str, Any]:
    document = {
        "objName": name,
        "scratchX": 0,
        "scratchY": 0,
        "scale": 1,
        "direction": 90,
        "rotationStyle": "normal",
        "isDraggable": False,
        "visible": True,
        "variables": [],
        "lists": [],
        "costumes": [],
        "sounds": [],
        "currentCostumeIndex": 0,
        "scripts": scripts or [],
    }
    document.update(fields)
    return document


def build_handle(document: Dict[str, Any]) -> RuntimeHandle:
    return install(convert_to_canonical(parse_project(document), placeholder_resolver))


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGBA", (48, 36), (255, 0, 0, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_md5(png_bytes):
    return hashlib.md5(png_bytes).hexdigest()


@pytest.fixture
def legacy_document(png_md5):
    """A small legacy project: the stage, one sprite, a monitor and a list watcher."""
    return stage_document(
        variables=[{"name": "score", "value": 0, "isPersistent": False}],
        lists=[{"listName": "items", "contents": ["a", "b"], "isPersistent": False}],
        costumes=[{
            "costumeName": "backdrop1",
            "baseLayerID": 0,
            "baseLayerMD5": f"{png_md5}.png",
            "bitmapResolution": 1,
            "rotationCenterX": 240,
            "rotationCenterY": 180,
        }],
        sounds=[{
            "soundName": "pop",
            "soundID": 1,
            "md5": f"{SOUND_MD5}.wav",
            "sampleCount": 258,
            "rate": 11025,
            "format": "",
        }],
        children=[
            sprite_document(
                "Cat",
                scripts=[[20, 30, [["whenGreenFlag"], ["forward:", 10]]]],
                scratchX=10,
                scratchY=-20,
                scale=0.5,
                direction=45,
                rotationStyle="leftRight",
                variables=[{"name": "speed", "value": 3, "isPersistent": False}],
                costumes=[{
                    "costumeName": "cat-a",
                    "baseLayerID": 2,
                    "baseLayerMD5": f"{png_md5}.png",
                    "bitmapResolution": 2,
                    "rotationCenterX": 24,
                    "rotationCenterY": 18,
                }],
            ),
            {
                "target": "Stage",
                "cmd": "getVar:",
                "param": "score",
                "color": 15629590,
                "label": "score",
                "mode": 1,
                "sliderMin": 0,
                "sliderMax": 100,
                "isDiscrete": True,
                "x": 5,
                "y": 5,
                "visible": True,
            },
            {"listName": "items", "contents": ["a", "b"], "isPersistent": False, "x": 5, "y": 32, "visible": True},
        ],
        info={"projectID": "0", "spriteCount": 1},
    )


@pytest.fixture
def sb2_bytes(legacy_document, png_bytes):
    """An in-memory .sb2 archive for ``legacy_document``."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("project.json", json.dumps(legacy_document))
        archive.writestr("0.png", png_bytes)
        archive.writestr("2.png", png_bytes)
        archive.writestr("1.wav", b"RIFF\x00\x00\x00\x00WAVE")
    return buffer.getvalue()
