import io
import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from PIL import Image

from .errors import AssetResolutionError, ConversionError

IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "bmp", "webp", "svg"}
SOUND_EXTENSIONS = {"wav", "mp3"}


@dataclass(eq=False)
class AssetHandle:
    """Opaque reference to a loaded asset; compared by identity."""
    key: str
    extension: str
    kind: str = "other"
    width: Optional[float] = None
    height: Optional[float] = None
    size: int = 0
    source: Optional[str] = None

    @property
    def md5ext(self) -> str:
        return f"{self.key}.{self.extension}" if self.extension else self.key


# Called with (content_key, extension); returns a handle or raises AssetResolutionError
AssetResolver = Callable[[str, str], AssetHandle]


def asset_kind(ext: str) -> str:
    ext = ext.lower()
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in SOUND_EXTENSIONS:
        return "sound"
    return "other"


def split_asset_key(md5ext: str) -> Tuple[str, str]:
    """Split a ``<md5>.<extension>`` composite key."""
    md5, sep, ext = md5ext.rpartition(".")
    if not sep or not md5 or not ext:
        raise ConversionError("couldn't understand asset designation", repr(md5ext))
    return md5.lower(), ext.lower()


def probe_image_size(data: bytes, ext: str) -> Optional[Tuple[float, float]]:
    ext = ext.lower()

    if ext == "svg":
        content = data[:2000].decode("utf-8", errors="ignore")
        width_match = re.search(r"width=\"([0-9.]+)", content)
        height_match = re.search(r"height=\"([0-9.]+)", content)
        if width_match and height_match:
            return float(width_match.group(1)), float(height_match.group(1))
        viewbox_match = re.search(r"viewBox=\"[0-9.-]+ [0-9.-]+ ([0-9.]+) ([0-9.]+)\"", content)
        if viewbox_match:
            return float(viewbox_match.group(1)), float(viewbox_match.group(2))
        return None

    if ext in IMAGE_EXTENSIONS:
        try:
            with Image.open(io.BytesIO(data)) as img:
                w, h = img.size
                return float(w), float(h)
        except (OSError, ValueError):
            return None

    return None


class AssetCache:
    """Deduplicates resolver calls on the ``(md5, extension)`` content key.

    Two records naming the same content resolve to the same handle even when
    their archive ids differ.
    """

    def __init__(self, resolver: AssetResolver) -> None:
        self._resolver = resolver
        self._handles: Dict[Tuple[str, str], AssetHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def resolve(self, content_key: str, extension: str) -> AssetHandle:
        key = (content_key.lower(), extension.lower())
        handle = self._handles.get(key)
        if handle is None:
            handle = self._resolver(*key)
            if not isinstance(handle, AssetHandle):
                raise AssetResolutionError(
                    "asset resolver returned an invalid handle", f"{key[0]}.{key[1]}"
                )
            self._handles[key] = handle
        return handle

    def resolve_md5ext(self, md5ext: str) -> AssetHandle:
        return self.resolve(*split_asset_key(md5ext))


def placeholder_resolver(content_key: str, extension: str) -> AssetHandle:
    """Resolver for projects loaded without their archive: handles carry only identifiers."""
    return AssetHandle(key=content_key, extension=extension, kind=asset_kind(extension))
