# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# ovaimporter/vsphere/archive.py
"""
OVA archive access.

An OVA is read as a tape: the tar stream is scanned in storage order and the
first member whose name matches a glob is handed back positioned at its
payload. There is no rewind; every lookup re-opens the source. Two sources
exist:

  - LocalArchiveSource: a file on disk
  - RemoteArchiveSource: an http(s) URL streamed with requests

Closing an ArchiveEntry closes the member reader, the tar stream and the
underlying source.
"""
from __future__ import annotations

import fnmatch
import logging
import posixpath
import tarfile
from typing import Any, BinaryIO, Optional

import requests
import urllib3

from ..core.exceptions import ArchiveCorruptError, EntryNotFoundError, SourceOpenError

log = logging.getLogger("ovaimporter.archive")

_REMOTE_PREFIXES = ("http://", "https://")
_STREAM_ERRORS = (OSError, requests.RequestException, urllib3.exceptions.HTTPError)


def is_remote(location: str) -> bool:
    return (location or "").lower().startswith(_REMOTE_PREFIXES)


class ArchiveSource:
    """One open of an archive location. `open()` may be called once."""

    kind = "archive"

    def __init__(self, location: str) -> None:
        self.location = location
        self._fh: Optional[BinaryIO] = None

    def open(self) -> BinaryIO:
        raise NotImplementedError

    def close(self) -> None:
        fh, self._fh = self._fh, None
        if fh is not None:
            fh.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.location!r})"


class LocalArchiveSource(ArchiveSource):
    kind = "local"

    def open(self) -> BinaryIO:
        try:
            self._fh = open(self.location, "rb")
        except OSError as e:
            raise SourceOpenError(
                msg=f"unable to open {self.location}: {e.strerror or e}",
                cause=e,
                context={"location": self.location},
            ) from e
        return self._fh


class RemoteArchiveSource(ArchiveSource):
    kind = "remote"

    def __init__(self, location: str, *, verify: bool = True, timeout: Optional[float] = None) -> None:
        super().__init__(location)
        self.verify = verify
        self.timeout = timeout
        self._resp: Optional[requests.Response] = None

    def open(self) -> BinaryIO:
        try:
            resp = requests.get(self.location, stream=True, verify=self.verify, timeout=self.timeout)
        except requests.RequestException as e:
            raise SourceOpenError(
                msg=f"unable to download {self.location}: {e}",
                cause=e,
                context={"location": self.location},
            ) from e

        if resp.status_code >= 400:
            resp.close()
            raise SourceOpenError(
                msg=f"unable to download {self.location}: HTTP {resp.status_code} {resp.reason or ''}".rstrip(),
                context={"location": self.location, "status": resp.status_code},
            )

        resp.raw.decode_content = True
        self._resp = resp
        self._fh = resp.raw
        return resp.raw

    def close(self) -> None:
        resp, self._resp = self._resp, None
        self._fh = None
        if resp is not None:
            resp.close()


def archive_source_for(location: str, *, verify: bool = True, timeout: Optional[float] = None) -> ArchiveSource:
    if is_remote(location):
        return RemoteArchiveSource(location, verify=verify, timeout=timeout)
    return LocalArchiveSource(location)


def _member_matches(member_name: str, pattern: str) -> bool:
    name = member_name[2:] if member_name.startswith("./") else member_name
    if "/" in pattern:
        return fnmatch.fnmatchcase(name, pattern)
    return fnmatch.fnmatchcase(posixpath.basename(name), pattern)


class _StrictTarInfo(tarfile.TarInfo):
    """
    In stream mode TarFile.next() ends the scan on a bad header once past the
    first member. Only the zero end-of-archive block or a clean EOF may end it;
    any other header error surfaces as ReadError.
    """

    @classmethod
    def fromtarfile(cls, tarfile_obj):
        try:
            return super().fromtarfile(tarfile_obj)
        except (tarfile.EOFHeaderError, tarfile.EmptyHeaderError):
            raise
        except tarfile.HeaderError as e:
            raise tarfile.ReadError(f"bad member header at offset {tarfile_obj.offset}: {e}") from e


class ArchiveEntry:
    """Bounded reader over one tar member."""

    def __init__(self, *, name: str, size: int, reader: BinaryIO, tar: tarfile.TarFile, source: ArchiveSource) -> None:
        self.name = name
        self.size = size
        self._reader = reader
        self._tar = tar
        self._source = source
        self.closed = False

    def read(self, n: int = -1) -> bytes:
        try:
            return self._reader.read(n)
        except tarfile.TarError as e:
            raise ArchiveCorruptError(
                msg=f"truncated entry {self.name} in {self._source.location}: {e}",
                cause=e,
                context={"location": self._source.location, "entry": self.name},
            ) from e
        except _STREAM_ERRORS as e:
            raise SourceOpenError(
                msg=f"read failed for {self.name} in {self._source.location}: {e}",
                cause=e,
                context={"location": self._source.location, "entry": self.name},
            ) from e

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._reader.close()
            self._tar.close()
        finally:
            self._source.close()

    def __enter__(self) -> "ArchiveEntry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ArchiveEntry(name={self.name!r}, size={self.size})"


def open_entry(
    location: str,
    pattern: str,
    *,
    verify: bool = True,
    timeout: Optional[float] = None,
    ctx: Any = None,
) -> ArchiveEntry:
    """
    First member of the archive at `location` whose name matches `pattern`.

    The pattern is a case-sensitive shell glob applied to the member's base
    name, or to its full name when the pattern itself contains '/'.
    """
    if ctx is not None:
        ctx.check(f"open {location}")

    source = archive_source_for(location, verify=verify, timeout=timeout)
    fh = source.open()

    try:
        tar = tarfile.open(fileobj=fh, mode="r|*", tarinfo=_StrictTarInfo)
    except tarfile.TarError as e:
        source.close()
        raise ArchiveCorruptError(
            msg=f"{location} is not a readable tar archive: {e}",
            cause=e,
            context={"location": location},
        ) from e
    except _STREAM_ERRORS as e:
        source.close()
        raise SourceOpenError(msg=f"unable to read {location}: {e}", cause=e, context={"location": location}) from e

    try:
        for member in tar:
            if not member.isfile():
                continue
            if _member_matches(member.name, pattern):
                reader = tar.extractfile(member)
                log.debug("Matched %s -> %s (%d bytes) in %s", pattern, member.name, member.size, location)
                return ArchiveEntry(name=member.name, size=member.size, reader=reader, tar=tar, source=source)
    except tarfile.TarError as e:
        tar.close()
        source.close()
        raise ArchiveCorruptError(
            msg=f"corrupt tar archive {location}: {e}",
            cause=e,
            context={"location": location, "pattern": pattern},
        ) from e
    except _STREAM_ERRORS as e:
        tar.close()
        source.close()
        raise SourceOpenError(msg=f"unable to read {location}: {e}", cause=e, context={"location": location}) from e

    tar.close()
    source.close()
    raise EntryNotFoundError(
        msg=f"no entry matching '{pattern}' in {location}",
        context={"location": location, "pattern": pattern},
    )


def read_entry(location: str, pattern: str, **kw: Any) -> bytes:
    """Whole payload of the first matching entry (used for the OVF descriptor)."""
    with open_entry(location, pattern, **kw) as entry:
        return entry.read()
