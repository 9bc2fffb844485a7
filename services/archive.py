"""Multi-file download: selection filtering and streaming ZIP output.

The archive is produced incrementally into the response body; nothing is
staged in a temp file and the whole result is never held in memory.
"""

from __future__ import annotations

import io
import time
import zipfile
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional

from services.errors import NoSelection, PathEscape
from services.logging_setup import core_log
from services.paths import PathResolver


ZIP_DOWNLOAD_NAME = "files.zip"
CHUNK_SIZE = 64 * 1024

_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


@dataclass(frozen=True)
class SelectedFile:
    name: str
    path: str
    size: int
    mtime: float
    mode: int


@dataclass(frozen=True)
class DownloadPlan:
    files: List[SelectedFile]

    @property
    def single(self) -> Optional[SelectedFile]:
        return self.files[0] if len(self.files) == 1 else None


class _ChunkSink(io.RawIOBase):
    """Write-only, non-seekable buffer drained by the response generator.

    ZipFile detects that it cannot seek and switches to data descriptors,
    so each entry is emitted in one forward pass.
    """

    def __init__(self) -> None:
        super().__init__()
        self._chunks: List[bytes] = []

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        if self.closed:
            raise ValueError("write to closed sink")
        data = bytes(b)
        self._chunks.append(data)
        return len(data)

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def _zip_info(f: SelectedFile) -> zipfile.ZipInfo:
    date_time = time.localtime(f.mtime)[:6]
    if date_time[0] < 1980:
        date_time = _ZIP_EPOCH
    zinfo = zipfile.ZipInfo(f.name, date_time=date_time)
    zinfo.compress_type = zipfile.ZIP_DEFLATED
    zinfo.external_attr = (f.mode & 0xFFFF) << 16
    # Lets ZipFile pick zip64 up front for big members.
    zinfo.file_size = f.size
    return zinfo


class ArchiveBuilder:
    def __init__(self, resolver: PathResolver, *, chunk_size: int = CHUNK_SIZE) -> None:
        self.resolver = resolver
        self.fs = resolver.fs
        self.chunk_size = chunk_size

    def plan(self, items: Iterable[str], *, client: str = "") -> DownloadPlan:
        """Filter the selection down to existing regular files.

        Escaping, missing and directory entries are logged and dropped; a
        repeated virtual path is kept once, at its first position. Raises
        :class:`NoSelection` when nothing is left.
        """
        files: List[SelectedFile] = []
        seen = set()
        for item in items:
            try:
                name = self.resolver.relative(item)
                path = self.resolver.resolve(item, follow_symlinks=True)
            except PathEscape:
                core_log("warning", "download item rejected", item=item, ip=client)
                continue
            if not name or name in seen:
                continue
            try:
                st = self.fs.stat(path)
            except OSError as e:
                core_log("error", "error accessing item", item=item, error=e, ip=client)
                continue
            if st.is_dir:
                core_log("debug", "download skips directory", item=item, ip=client)
                continue
            seen.add(name)
            files.append(SelectedFile(name=name, path=path, size=st.size, mtime=st.mtime, mode=st.mode))

        if not files:
            raise NoSelection("no files selected for download")
        return DownloadPlan(files=files)

    def stream(self, plan: DownloadPlan, *, client: str = "") -> Iterator[bytes]:
        """Yield the ZIP container for ``plan`` chunk by chunk.

        A member whose source cannot be opened or fails on its first read
        is left out. A read error after the member header went out ends that
        member early (its CRC covers what was written) and is logged with
        the member name. Closing the generator early, as WSGI servers do
        when the client goes away, releases the open source file and stops
        the archive.
        """
        sink = _ChunkSink()
        added = 0
        truncated: List[str] = []
        try:
            with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED, allowZip64=True) as zf:
                for f in plan.files:
                    try:
                        src = self.fs.open_read(f.path)
                    except OSError as e:
                        core_log("error", "error adding file to zip", item=f.name, error=e, ip=client)
                        continue
                    with src:
                        try:
                            chunk = src.read(self.chunk_size)
                        except OSError as e:
                            core_log("error", "error reading file, left out of zip", item=f.name, error=e, ip=client)
                            continue
                        written = 0
                        with zf.open(_zip_info(f), mode="w") as dst:
                            while chunk:
                                dst.write(chunk)
                                written += len(chunk)
                                data = sink.drain()
                                if data:
                                    yield data
                                try:
                                    chunk = src.read(self.chunk_size)
                                except OSError as e:
                                    core_log(
                                        "warning",
                                        "zip member truncated by read error",
                                        item=f.name,
                                        written=written,
                                        size=f.size,
                                        error=e,
                                        ip=client,
                                    )
                                    truncated.append(f.name)
                                    break
                    added += 1
                    data = sink.drain()
                    if data:
                        yield data
        except GeneratorExit:
            core_log("warning", "zip stream closed by client", added=added, total=len(plan.files), ip=client)
            raise
        tail = sink.drain()
        if tail:
            yield tail
        if truncated:
            core_log("warning", "zip download has truncated members", items=", ".join(truncated), ip=client)
        core_log("info", "zip download complete", added=added, total=len(plan.files), ip=client)
