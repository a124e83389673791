"""
Functions for reading the content of ZIP entries.
"""

import zlib

from typing import BinaryIO, Optional
from io import RawIOBase
from os import SEEK_SET

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader, BinaryReaderFormatError
from atmfjstc.lib.file_utils.fileobj import FileObjSliceReader, get_fileobj_size
from atmfjstc.lib.archive_forensics.zip import ZipCompressionMethod

from .entry import ZipEntry
from .directory import LOCAL_HEADER_SIGNATURE
from .errors import ZipArchiveCorruptError


DEFAULT_BUFFER_SIZE = 16 * 1024


class RawDeflateReader(RawIOBase):
    """
    Read-only file object that inflates raw DEFLATE data (i.e. with no zlib or gzip framing) read from another file
    object, starting at its current position.

    Reading stops once the DEFLATE stream ends or the underlying data runs out, whichever comes first. Closing this
    object does not close the underlying file object.
    """

    _fileobj: BinaryIO
    _read_size: int

    _decompressor: 'zlib._Decompress'
    _compressed_data: bytes
    _pending_output: bytes
    _flushed: bool

    def __init__(self, fileobj: BinaryIO, read_size: int = DEFAULT_BUFFER_SIZE):
        if read_size < 1:
            raise ValueError(f"read_size must be strictly positive! (is: {read_size})")

        self._fileobj = fileobj
        self._read_size = read_size

        self._decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
        self._compressed_data = b''
        self._pending_output = b''
        self._flushed = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self.closed:
            raise ValueError("Cannot read from closed fileobj")

        size = len(buffer)

        while size > 0:
            if len(self._pending_output) > 0:
                data = self._pending_output[:size]
                self._pending_output = self._pending_output[size:]

                buffer[:len(data)] = data
                return len(data)

            if self._decompressor.eof or self._flushed:
                break

            if len(self._compressed_data) == 0:
                self._compressed_data = self._fileobj.read(self._read_size)

                if len(self._compressed_data) == 0:
                    # The decompressor may still hold output for input it has already consumed
                    self._pending_output = self._decompressor.flush()
                    self._flushed = True
                    continue

            data = self._decompressor.decompress(self._compressed_data, size)
            self._compressed_data = self._decompressor.unconsumed_tail

            if len(data) > 0:
                buffer[:len(data)] = data
                return len(data)

        return 0


def open_entry_data(fileobj: BinaryIO, entry: ZipEntry, archive_name: Optional[str] = None) -> RawIOBase:
    """
    Opens a stream over the uncompressed content of an entry.

    The entry's local header signature is checked first, as protection against offsets that do not match the actual
    content of the archive.

    Args:
        fileobj: The seekable file object containing the archive.
        entry: The entry to open, as decoded from the central directory of the same archive.
        archive_name: The archive name, if any, for use in error messages.

    Returns:
        A readable file object. It reads from `fileobj` using absolute offsets, but `fileobj` should not be used by
        anything else while the stream is being read. Closing the stream does not close `fileobj`.

    Raises:
        ZipArchiveCorruptError: If the local header signature does not match, or the entry data starts past the end
            of the archive.
        NotImplementedError: If the entry is compressed with a method other than STORE or DEFLATE.
    """

    if entry.compression_method not in (ZipCompressionMethod.STORE, ZipCompressionMethod.DEFLATE):
        raise NotImplementedError(
            f"Entry '{entry.name}' uses compression method {entry.compression_method}. Only Store and Deflate "
            f"entries are supported"
        )

    reader = BinaryReader(fileobj, big_endian=False)

    try:
        reader.seek(entry.header_offset, SEEK_SET)
        signature = reader.maybe_read_struct('I', 'local file header signature')
    except BinaryReaderFormatError as e:
        raise ZipArchiveCorruptError(archive_name, f"local header for entry '{entry.name}' is truncated") from e

    if (signature is None) or (signature[0] != LOCAL_HEADER_SIGNATURE):
        raise ZipArchiveCorruptError(archive_name, f"local header signature mismatch for entry '{entry.name}'")

    total_size = get_fileobj_size(fileobj)
    if entry.data_offset > total_size:
        raise ZipArchiveCorruptError(archive_name, f"data for entry '{entry.name}' starts past the end of the file")

    # Sizes are as declared in the central directory; we tolerate them running past the actual end of the data
    window_size = min(entry.compressed_size, total_size - entry.data_offset)
    data_slice = FileObjSliceReader(fileobj, entry.data_offset, window_size)

    return RawDeflateReader(data_slice) if entry.deflated else data_slice


def extract_entry(
    fileobj: BinaryIO, entry: ZipEntry, sink: BinaryIO, buffer_size: int = DEFAULT_BUFFER_SIZE,
    archive_name: Optional[str] = None
) -> int:
    """
    Writes the uncompressed content of an entry to a sink, in chunks of at most `buffer_size` bytes.

    Exactly `entry.original_size` bytes are written, unless the data ends sooner, in which case extraction simply stops
    there. The CRC-32 is not checked.

    Returns:
        The number of bytes written.

    Raises:
        ZipArchiveCorruptError: If the local header does not check out, or the compressed data is invalid.
        NotImplementedError: If the entry is compressed with an unsupported method.
    """

    if buffer_size < 1:
        raise ValueError(f"buffer_size must be strictly positive! (is: {buffer_size})")

    remaining = entry.original_size

    try:
        with open_entry_data(fileobj, entry, archive_name) as data_stream:
            while remaining > 0:
                chunk = data_stream.read(min(buffer_size, remaining))
                if len(chunk) == 0:
                    break

                sink.write(chunk)
                remaining -= len(chunk)
    except zlib.error as e:
        raise ZipArchiveCorruptError(archive_name, f"compressed data for entry '{entry.name}' is invalid") from e

    return entry.original_size - remaining
