"""
This package provides a lightweight, read-only interface for accessing ZIP archives.

Compared to the built-in `zipfile` module, it is deliberately minimal: only the classic 32-bit format is read, and
only Stored and Deflate entries can be extracted. There is no support for writing archives, ZIP64, encryption or
multi-disk archives. In exchange, the parser is lenient in the same ways many small unzippers are: any bytes may
precede the archive, corrupt central directory slots are skipped, and the entry list is only decoded when first
needed.

The main class of interest is `ZipArchive`. We can open an archive like so::

    with ZipArchive('path/to/file.zip') as zf:
        for entry in zf.entries:
            print(entry.name, entry.original_size)

and extract entries to any writable binary file object, or all at once to a directory::

    with ZipArchive('path/to/file.zip') as zf:
        with open('readme.txt', 'wb') as f:
            zf.extract('docs/readme.txt', f)

        zf.extract_all('output/dir')

More details are available in the `ZipArchive` and `ZipEntry` docs.
"""

import codecs
import logging
import os

from typing import AnyStr, BinaryIO, ContextManager, Iterator, Optional, Tuple, Union
from os import PathLike
from io import BytesIO, IOBase, TextIOBase
from pathlib import Path, PurePosixPath, PureWindowsPath

from atmfjstc.lib.file_utils.safe_output_file import open_safe_output_file

from .entry import ZipEntry
from .cache import ZipEntryCache
from .directory import read_zip_entries
from .extract import extract_entry, DEFAULT_BUFFER_SIZE
from .errors import BadZipArchiveError, ZipArchiveCorruptError, ZipEntryNotFoundError, ZipUnsafeEntryPathError


__version__ = '1.0.0'


LOG = logging.getLogger(__name__)


DEFAULT_LEGACY_ENCODING = 'cp437'


class ZipArchive(ContextManager['ZipArchive']):
    """
    This class provides read-only access to a ZIP archive stored in a file or file object.

    Unlike `zipfile.ZipFile`, nothing is read when the archive is opened. The central directory is decoded the first
    time the entries are requested, and the result is kept for the lifetime of the object.

    A `ZipArchive` owns its file object. It can be either opened and closed manually::

        zf = ZipArchive("file.zip")
        print(zf.file_names)
        zf.close()

    or used as a context manager, which closes it on exit even in case of errors::

        with ZipArchive("file.zip") as zf:
            print(zf.file_names)

    Note that the file object is closed in both cases, even if it was supplied by the caller.

    Warning: all operations move the position of the same underlying file object, so a `ZipArchive` must not be used
    from multiple threads simultaneously. Open a separate `ZipArchive` per thread instead.
    """

    _fileobj: Optional[BinaryIO] = None
    _name: Optional[str] = None

    _legacy_encoding: str
    _buffer_size: int

    _cache: ZipEntryCache

    def __init__(
        self, path_or_fileobj: Union[PathLike, AnyStr, BinaryIO], legacy_encoding: str = DEFAULT_LEGACY_ENCODING,
        buffer_size: int = DEFAULT_BUFFER_SIZE
    ):
        """
        Opens a ZIP archive for reading.

        Args:
            path_or_fileobj: Either a filename, or an open, seekable binary file object containing the archive. Offsets
                in the archive are taken to be relative to the start of the file object, not its current position.
            legacy_encoding: The encoding used for entry names and comments that are not flagged as UTF-8. By default,
                this is CP437, the historical encoding for ZIP archives, but archivers often use the local code page
                instead.
            buffer_size: The maximum size of the chunks in which entry data is extracted.

        Raises:
            ValueError: If the encoding is unknown, the buffer size is not positive, or the file object is not a
                seekable binary one.
        """

        try:
            codecs.lookup(legacy_encoding)
        except LookupError as e:
            raise ValueError(f"Unknown legacy encoding: {legacy_encoding!r}") from e

        if buffer_size < 1:
            raise ValueError(f"buffer_size must be strictly positive! (is: {buffer_size})")

        self._legacy_encoding = legacy_encoding
        self._buffer_size = buffer_size

        if isinstance(path_or_fileobj, IOBase):
            if isinstance(path_or_fileobj, TextIOBase):
                raise ValueError("ZipArchive works on binary, not text file objects")
            if not path_or_fileobj.seekable():
                raise ValueError("File object must be seekable")

            self._fileobj = path_or_fileobj
        else:
            self._fileobj = open(path_or_fileobj, 'rb')

        # File objects opened from a descriptor have an int name
        name = getattr(self._fileobj, 'name', None)
        if isinstance(name, (str, bytes, PathLike)):
            self._name = os.fsdecode(name) or None

        self._cache = ZipEntryCache(self._load_entries)

    @property
    def name(self) -> Optional[str]:
        """
        The name of the archive file, if known.
        """
        return self._name

    @property
    def closed(self) -> bool:
        return (self._fileobj is None) or self._fileobj.closed

    @property
    def entries(self) -> Tuple[ZipEntry, ...]:
        """
        All the entries in the archive, in the order they are listed in the central directory.

        Files that do not look like ZIP archives (no end-of-central-directory record) simply have no entries.

        Raises:
            ZipArchiveCorruptError: If the central directory is truncated.
        """
        return self._cache.entries()

    @property
    def file_names(self) -> Tuple[str, ...]:
        """
        The names of all the entries that are not directories, in central directory order.
        """
        return self._cache.file_names()

    def get_entry(self, name: str) -> ZipEntry:
        """
        Gets the entry with a given name (the first one, if there are duplicates).

        Raises:
            ZipEntryNotFoundError: If there is no entry by that name.
        """

        entry = self._cache.get(name)
        if entry is None:
            raise ZipEntryNotFoundError(name)

        return entry

    def extract(self, name_or_entry: Union[str, ZipEntry], sink: BinaryIO) -> int:
        """
        Extracts the uncompressed content of an entry into a writable binary file object.

        The archive must still be open for this to work. Entries may be extracted in any order and any number of times.

        Args:
            name_or_entry: The name of the entry, or an entry obtained from `entries`.
            sink: The file object to write to. It is written to from its current position and is not closed.

        Returns:
            The number of bytes written. This is the declared uncompressed size of the entry, unless the data ended
            prematurely.

        Raises:
            ZipEntryNotFoundError: If there is no entry by that name.
            ZipArchiveCorruptError: If the entry's local header does not match the central directory, or the
                compressed data is invalid.
            NotImplementedError: If the entry uses a compression method other than Store or Deflate.
        """

        entry = self._resolve_entry(name_or_entry)

        self._require_open()

        return extract_entry(self._fileobj, entry, sink, buffer_size=self._buffer_size, archive_name=self._name)

    def read(self, name_or_entry: Union[str, ZipEntry]) -> bytes:
        """
        Convenience function that returns the uncompressed content of an entry as a `bytes` object. See `extract`.
        """

        buffer = BytesIO()
        self.extract(name_or_entry, buffer)

        return buffer.getvalue()

    def extract_all(self, directory: Union[PathLike, AnyStr]) -> Tuple[Path, ...]:
        """
        Extracts all the file entries into a directory, re-creating their relative paths.

        Parent directories are created as needed. Directory entries are not extracted by themselves, so an empty
        directory in the archive will not appear in the output.

        Output files are opened with `open_safe_output_file`: existing files are replaced only once the new content has
        been fully extracted. If the extraction of an entry fails, the partially written file for that entry is deleted
        and any previous file at that location is restored. Files extracted before it are kept.

        Args:
            directory: The destination directory. It is created if it does not exist.

        Returns:
            The paths of the files written, in the order they were extracted.

        Raises:
            ZipUnsafeEntryPathError: If an entry name is empty, absolute or would otherwise point outside the
                destination directory. This is checked for each entry before its file is created.
            SafeOutputFileError: If an output file cannot be set up (e.g. a directory is in the way, or a backup from
                a previous crashed run is still present).
            Any of the exceptions that may be raised by `extract`.
        """

        target_dir = Path(os.fsdecode(directory))
        written = []

        for entry in self.entries:
            if entry.is_directory:
                continue

            dest_path = _destination_path(target_dir, entry.name)

            output = open_safe_output_file(dest_path, overwrite='safe', success='commit', create_parent_dirs=True)
            try:
                with output.handle as f:
                    self.extract(entry, f)

                output.commit()
            finally:
                output.finish()

            LOG.debug("Extracted '%s' to %s", entry.name, dest_path)

            written.append(dest_path)

        return tuple(written)

    def close(self):
        """
        Closes the underlying file object.

        Once the archive is closed, the entries can still be listed if they had already been read, but their content
        can no longer be extracted. Closing an archive more than once has no effect.
        """

        if self._fileobj is None:
            return

        fileobj = self._fileobj
        self._fileobj = None

        fileobj.close()

    def __enter__(self) -> 'ZipArchive':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __iter__(self) -> Iterator[ZipEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and (self._cache.get(name) is not None)

    def _require_open(self):
        if self.closed:
            raise ValueError("Cannot read from the archive because it has been closed")

    def _resolve_entry(self, name_or_entry: Union[str, ZipEntry]) -> ZipEntry:
        if isinstance(name_or_entry, ZipEntry):
            if not any(entry is name_or_entry for entry in self.entries):
                raise ValueError("Entry does not belong to this ZIP archive!")

            return name_or_entry

        return self.get_entry(name_or_entry)

    def _load_entries(self) -> Tuple[ZipEntry, ...]:
        self._require_open()

        return tuple(read_zip_entries(self._fileobj, self._legacy_encoding))


def _destination_path(target_dir: Path, entry_name: str) -> Path:
    posix_path = PurePosixPath(entry_name)

    if (
        (not posix_path.parts) or posix_path.is_absolute() or PureWindowsPath(entry_name).drive or
        ('..' in posix_path.parts)
    ):
        raise ZipUnsafeEntryPathError(entry_name)

    return target_dir.joinpath(*posix_path.parts)
