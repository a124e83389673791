"""
Functions for locating and decoding the central directory of a ZIP archive.

All functions here take a seekable binary file object and work with absolute offsets. They reposition the file object,
so callers that care about its position need to save and restore it themselves.
"""

import logging

from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional
from os import SEEK_SET, SEEK_CUR

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader, BinaryReaderFormatError
from atmfjstc.lib.file_utils.fileobj import preserve_fileobj_pos
from atmfjstc.lib.archive_forensics.zip import ZipCompressionMethod, ZipEntryFlags

from .entry import ZipEntry
from .errors import ZipArchiveCorruptError


LOG = logging.getLogger(__name__)


EOCD_SIGNATURE = 0x06054B50
CENTRAL_HEADER_SIGNATURE = 0x02014B50
LOCAL_HEADER_SIGNATURE = 0x04034B50

EOCD_MIN_SIZE = 22
LOCAL_HEADER_FIXED_SIZE = 30
LOCAL_HEADER_LENGTHS_OFFSET = 26

# Give up the backwards scan once we get this close to the start of the file
EOCD_SCAN_LOWER_BOUND = 5


@dataclass(frozen=True)
class CentralDirectoryLocation:
    """
    The information in the end-of-central-directory record that we need for decoding the entries.

    Attributes:
        eocd_offset: The offset of the EOCD record itself.
        directory_offset: The offset of the first central directory header.
        directory_size: The size of the central directory, as declared. It is informative only.
        entry_count: The number of entries declared for the central directory.
    """

    eocd_offset: int
    directory_offset: int
    directory_size: int
    entry_count: int


def read_zip_entries(fileobj: BinaryIO, legacy_encoding: str) -> Iterator[ZipEntry]:
    """
    Locates the central directory and decodes all the entries within, in the order they are listed.

    Args:
        fileobj: A seekable binary file object containing the archive.
        legacy_encoding: The encoding used for names and comments not flagged as UTF-8.

    Returns:
        An iterator over the entries. Archives too short to be ZIP files, or in which no EOCD record can be found,
        simply yield no entries.

    Raises:
        ZipArchiveCorruptError: If the central directory or a local header ends prematurely.
    """

    location = locate_central_directory(fileobj)
    if location is None:
        return

    yield from read_central_directory(fileobj, location, legacy_encoding)


def locate_central_directory(fileobj: BinaryIO) -> Optional[CentralDirectoryLocation]:
    """
    Scans backwards from the end of the data for the end-of-central-directory record.

    The EOCD record may be followed by a comment of any length, so we try each position from the latest possible one
    towards the start of the data, one byte at a time.

    Returns:
        A `CentralDirectoryLocation`, or None if the data is too short or no EOCD signature was found.
    """

    reader = BinaryReader(fileobj, big_endian=False)

    total_size = reader.total_size()
    if total_size < EOCD_MIN_SIZE:
        LOG.debug("Data is %d bytes long, too short to contain an EOCD record", total_size)
        return None

    reader.seek(total_size - EOCD_MIN_SIZE, SEEK_SET)

    while reader.read_struct('I', 'EOCD signature')[0] != EOCD_SIGNATURE:
        if reader.tell() <= EOCD_SCAN_LOWER_BOUND:
            LOG.debug("No EOCD signature found in %d bytes of data", total_size)
            return None

        reader.seek(-5, SEEK_CUR)

    eocd_offset = reader.tell() - 4

    reader.skip_bytes(6, 'EOCD disk numbers')
    entry_count, directory_size, directory_offset = reader.read_struct('HII', 'EOCD record')

    return CentralDirectoryLocation(
        eocd_offset=eocd_offset,
        directory_offset=directory_offset,
        directory_size=directory_size,
        entry_count=entry_count,
    )


def read_central_directory(
    fileobj: BinaryIO, location: CentralDirectoryLocation, legacy_encoding: str
) -> Iterator[ZipEntry]:
    """
    Decodes the entries in the central directory.

    Slots whose signature does not match that of a central directory header are skipped without producing an entry,
    so the number of entries may be lower than `location.entry_count`. Note that the reader is not re-aligned after a
    bad slot; the next slot is expected to start right after the bad signature.
    """

    reader = BinaryReader(fileobj, big_endian=False)
    reader.seek(location.directory_offset, SEEK_SET)

    n_entries = 0

    try:
        for slot in range(location.entry_count):
            signature, = reader.read_struct('I', 'central directory header signature')
            if signature != CENTRAL_HEADER_SIGNATURE:
                LOG.debug("Skipping central directory slot %d with bad signature 0x%08x", slot, signature)
                continue

            _versions, flags, method, _timestamp, crc32, compressed_size, original_size, name_length, extra_length, \
                comment_length, _disk_and_internal_attrs, _external_attrs, header_offset = \
                reader.read_struct('IHHIIIIHHHIII', 'central directory header')

            raw_name = reader.read_amount(name_length, 'entry name')
            reader.skip_bytes(extra_length, 'entry extra field')
            raw_comment = reader.read_amount(comment_length, 'entry comment')

            encoding = 'utf-8' if (flags & ZipEntryFlags.UTF8) else legacy_encoding

            yield ZipEntry(
                name=raw_name.decode(encoding, errors='replace'),
                comment=raw_comment.decode(encoding, errors='replace'),
                crc32=crc32,
                compressed_size=compressed_size,
                original_size=original_size,
                header_offset=header_offset,
                data_offset=resolve_data_offset(fileobj, header_offset),
                compression_method=_as_compression_method(method),
                flags=ZipEntryFlags(flags),
            )

            n_entries += 1
    except BinaryReaderFormatError as e:
        raise ZipArchiveCorruptError(reader.name(), "central directory is truncated") from e

    LOG.debug("Decoded %d of %d central directory entries", n_entries, location.entry_count)


def resolve_data_offset(fileobj: BinaryIO, header_offset: int) -> int:
    """
    Computes the offset of an entry's data from its local file header.

    The local header carries its own copies of the name and extra fields, which need not be the same length as those
    in the central directory, so the data offset cannot be derived from the central directory alone.

    The position of `fileobj` is preserved.

    Raises:
        BinaryReaderFormatError: If the local header lies (partly) beyond the end of the data.
    """

    with preserve_fileobj_pos(fileobj):
        fileobj.seek(header_offset + LOCAL_HEADER_LENGTHS_OFFSET, SEEK_SET)

        reader = BinaryReader(fileobj, big_endian=False)
        name_length, extra_length = reader.read_struct('HH', 'local header name and extra lengths')

        return reader.tell() + name_length + extra_length


def _as_compression_method(raw_value: int):
    try:
        return ZipCompressionMethod(raw_value)
    except ValueError:
        return raw_value
