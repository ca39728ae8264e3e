"""Archive extraction functions, used to unpack loader installers and native libraries.

All functions accept either a path to a ZIP archive or an already opened `ZipFile`.
"""

from zipfile import ZipFile, ZipInfo
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
import shutil
import re

from .error import NotFoundError

from typing import Iterator, Optional, Union


__all__ = ["extract_all", "extract_file", "extract_dir", "read_manifest_main_class"]

Archive = Union[Path, str, ZipFile]


@contextmanager
def _open_archive(archive: Archive) -> Iterator[ZipFile]:
    if isinstance(archive, ZipFile):
        yield archive
    else:
        with ZipFile(archive) as zf:
            yield zf


def _safe_parts(name: str) -> Optional[tuple]:
    """Return the path components of an entry name, without any absolute prefix or
    parent references. None is returned if the entry resolves to nothing.
    """
    parts = tuple(part for part in PurePosixPath(name.replace("\\", "/")).parts
        if part not in ("", "/", ".", ".."))
    return parts if len(parts) else None


def _copy_entry(zf: ZipFile, info: ZipInfo, dst_file: Path) -> None:
    dst_file.parent.mkdir(parents=True, exist_ok=True)
    with zf.open(info) as src, dst_file.open("wb") as dst:
        shutil.copyfileobj(src, dst)


def extract_all(archive: Archive, dst_dir: Path, *, exclude: tuple = ()) -> int:
    """Extract every entry of the archive into the destination directory, directory
    entries are recreated. Entries whose name starts with one of the excluded prefixes
    are ignored.

    :return: The number of extracted files.
    """

    count = 0
    dst_dir.mkdir(parents=True, exist_ok=True)

    with _open_archive(archive) as zf:
        for info in zf.infolist():

            if exclude and info.filename.startswith(exclude):
                continue

            parts = _safe_parts(info.filename)
            if parts is None:
                continue

            dst_path = dst_dir.joinpath(*parts)
            if info.is_dir():
                dst_path.mkdir(parents=True, exist_ok=True)
            else:
                _copy_entry(zf, info, dst_path)
                count += 1

    return count


def extract_file(archive: Archive, entry_name: str, dst_file: Path) -> None:
    """Special function used to extract a specific file entry to a destination.
    This is different from ZipFile.extract because the latter keep the full entry's path.

    :raises NotFoundError: If the entry is not present in the archive.
    """

    with _open_archive(archive) as zf:
        try:
            info = zf.getinfo(entry_name)
        except KeyError:
            raise NotFoundError(f"entry '{entry_name}' in archive")
        _copy_entry(zf, info, dst_file)


def extract_dir(archive: Archive, prefix: str, dst_dir: Path) -> int:
    """Extract every entry whose normalized name is equal to or nested under the given
    prefix, the structure relative to that prefix is kept in the destination directory.

    :return: The number of extracted files.
    :raises NotFoundError: If no entry matched the prefix.
    """

    prefix_parts = _safe_parts(prefix) or ()
    prefix_len = len(prefix_parts)
    found = False
    count = 0

    with _open_archive(archive) as zf:
        for info in zf.infolist():

            parts = _safe_parts(info.filename)
            if parts is None or parts[:prefix_len] != prefix_parts:
                continue

            found = True
            rel_parts = parts[prefix_len:]
            dst_path = dst_dir.joinpath(*rel_parts)

            if info.is_dir():
                dst_path.mkdir(parents=True, exist_ok=True)
            elif not len(rel_parts):
                # The prefix itself is a file, keep its name.
                _copy_entry(zf, info, dst_dir / parts[-1])
                count += 1
            else:
                _copy_entry(zf, info, dst_path)
                count += 1

    if not found:
        raise NotFoundError(f"directory '{prefix}' in archive")

    return count


def read_manifest_main_class(archive: Archive) -> str:
    """Read the 'Main-Class' attribute from the manifest of a JAR file.

    :raises NotFoundError: If the manifest or its main class is missing.
    """

    with _open_archive(archive) as zf:
        try:
            with zf.open("META-INF/MANIFEST.MF") as manifest_fp:
                manifest = manifest_fp.read().decode(errors="replace")
                # Long values are wrapped at 72 bytes, continuation lines start with a space.
                manifest = re.sub(r"\r?\n ", "", manifest)
                for manifest_line in manifest.splitlines():
                    if manifest_line.startswith("Main-Class:"):
                        main_class = manifest_line[len("Main-Class:"):].strip()
                        if len(main_class):
                            return main_class
        except KeyError:
            pass

    raise NotFoundError(f"main class of {archive if not isinstance(archive, ZipFile) else archive.filename}")
