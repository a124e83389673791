from dataclasses import dataclass
from typing import Union

from atmfjstc.lib.archive_forensics.zip import ZipCompressionMethod, ZipEntryFlags


@dataclass(frozen=True)
class ZipEntry:
    """
    An object describing a member of a ZIP archive, as recorded in the central directory.

    Objects of this type are inert data containers. They remain readable after the originating `ZipArchive` is closed,
    but the content of the entry can only be extracted while the archive is open.

    Attributes:
        name: The path of the entry within the archive, using ``/`` as the separator. Directory entries end in ``/``.
        comment: The entry comment, or an empty string.
        crc32: The CRC-32 of the uncompressed data, as declared in the central directory. It is not checked during
            extraction.
        compressed_size: The size of the compressed data, in bytes, as declared in the central directory.
        original_size: The size of the uncompressed data, in bytes, as declared in the central directory.
        header_offset: The offset, in bytes, of the entry's local file header within the archive.
        data_offset: The offset, in bytes, of the entry's compressed data within the archive. This is computed from
            the local file header, whose name and extra fields may differ in length from those in the central
            directory.
        compression_method: A `ZipCompressionMethod` enum, or an int if the method is not recognized. Only STORE and
            DEFLATE entries can be extracted.
        flags: The general purpose flags for the entry, as a `ZipEntryFlags` enum.
    """

    name: str
    comment: str

    crc32: int
    compressed_size: int
    original_size: int

    header_offset: int
    data_offset: int

    compression_method: Union[ZipCompressionMethod, int] = ZipCompressionMethod.STORE
    flags: ZipEntryFlags = ZipEntryFlags(0)

    @property
    def deflated(self) -> bool:
        return self.compression_method == ZipCompressionMethod.DEFLATE

    @property
    def is_directory(self) -> bool:
        return self.name.endswith('/')

    @property
    def is_file(self) -> bool:
        return not self.is_directory
