import hashlib
import io
import os
import zipfile
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from .assets import AssetCache, AssetHandle, asset_kind, placeholder_resolver, probe_image_size
from .diagnostics import DiagnosticCollector
from .errors import AssetResolutionError, ContainerError
from .from_legacy import asset_ids, convert_to_canonical
from .legacy import LegacyProject, decode_legacy_project
from .program import CanonicalProgram

PROJECT_JSON = "project.json"


@dataclass
class LoadResult:
    program: CanonicalProgram
    legacy: LegacyProject
    diagnostics: DiagnosticCollector = field(default_factory=DiagnosticCollector)


class ArchiveAssetResolver:
    """Resolves content keys to members of a project archive.

    Archive members are named ``<id>.<ext>``; the ids come from the costume
    and sound records. Keys with no recorded id fall back to matching the md5
    of each member's bytes.
    """

    def __init__(self, archive: zipfile.ZipFile, ids: Optional[Dict[str, int]] = None) -> None:
        self.archive = archive
        self.ids = dict(ids or {})
        self._by_member: Dict[str, AssetHandle] = {}
        self._md5_index: Optional[Dict[str, str]] = None

    def _hash_members(self) -> Dict[str, str]:
        if self._md5_index is None:
            index: Dict[str, str] = {}
            for name in sorted(self.archive.namelist()):
                if name == PROJECT_JSON or name.endswith("/"):
                    continue
                ext = os.path.splitext(name)[1].lower().lstrip(".")
                try:
                    data = self.archive.read(name)
                except zipfile.BadZipFile:
                    # Corrupt members never match
                    continue
                digest = hashlib.md5(data).hexdigest()
                index.setdefault(f"{digest}.{ext}", name)
            self._md5_index = index
        return self._md5_index

    def member_for(self, content_key: str, extension: str) -> str:
        md5ext = f"{content_key}.{extension}"
        names = set(self.archive.namelist())
        asset_id = self.ids.get(md5ext)
        if asset_id is not None:
            for candidate in (f"{asset_id}.{extension}", f"{asset_id}.{extension.upper()}"):
                if candidate in names:
                    return candidate
        if md5ext in names:
            return md5ext
        member = self._hash_members().get(md5ext)
        if member is None:
            raise AssetResolutionError("asset not found in archive", md5ext)
        return member

    def __call__(self, content_key: str, extension: str) -> AssetHandle:
        member = self.member_for(content_key, extension)
        handle = self._by_member.get(member)
        if handle is not None:
            return handle

        try:
            data = self.archive.read(member)
        except (KeyError, zipfile.BadZipFile) as exc:
            raise AssetResolutionError("could not read asset from archive", member) from exc

        size = probe_image_size(data, extension)
        handle = AssetHandle(
            key=content_key,
            extension=extension,
            kind=asset_kind(extension),
            width=size[0] if size else None,
            height=size[1] if size else None,
            size=len(data),
            source=member,
        )
        self._by_member[member] = handle
        return handle


def read_project_json(archive: zipfile.ZipFile) -> bytes:
    if PROJECT_JSON not in archive.namelist():
        raise ContainerError("project.json not found in the archive")
    return archive.read(PROJECT_JSON)


def load_project_bytes(data: bytes) -> LoadResult:
    """Decode and convert a project from archive bytes or bare ``project.json`` bytes."""
    collector = DiagnosticCollector()
    if not zipfile.is_zipfile(io.BytesIO(data)):
        if data.lstrip()[:1] != b"{":
            raise ContainerError("not a project archive or project.json document")
        legacy = decode_legacy_project(data, collector)
        program = convert_to_canonical(legacy, AssetCache(placeholder_resolver), collector)
        return LoadResult(program=program, legacy=legacy, diagnostics=collector)

    try:
        with zipfile.ZipFile(io.BytesIO(data), "r") as archive:
            legacy = decode_legacy_project(read_project_json(archive), collector)
            resolver = ArchiveAssetResolver(archive, asset_ids(legacy))
            program = convert_to_canonical(legacy, resolver, collector)
    except zipfile.BadZipFile as exc:
        raise ContainerError("the project archive is corrupt", str(exc)) from exc
    return LoadResult(program=program, legacy=legacy, diagnostics=collector)


def open_project(path: Union[str, os.PathLike]) -> LoadResult:
    if not os.path.exists(path):
        raise ContainerError("project file not found", str(path))
    with open(path, "rb") as handle:
        data = handle.read()
    return load_project_bytes(data)
