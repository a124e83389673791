import struct
import unittest
import zlib

from io import BytesIO

from atmfjstc.lib.archive_forensics.zip import ZipCompressionMethod
from atmfjstc.lib.unzip.directory import locate_central_directory, read_zip_entries, resolve_data_offset
from atmfjstc.lib.unzip.errors import ZipArchiveCorruptError

from zip_samples import Member, build_zip, UTF8_FLAG


class LocateCentralDirectoryTest(unittest.TestCase):
    def test_empty_data(self):
        self.assertIsNone(locate_central_directory(BytesIO(b'')))

    def test_too_short(self):
        self.assertIsNone(locate_central_directory(BytesIO(b'PK\x05\x06' + b'\x00' * 17)))

    def test_not_a_zip(self):
        self.assertIsNone(locate_central_directory(BytesIO(b'\x00' * 1000)))

    def test_empty_archive(self):
        built = build_zip([])

        location = locate_central_directory(BytesIO(built.data))

        self.assertEqual(location.eocd_offset, 0)
        self.assertEqual(location.entry_count, 0)

    def test_simple(self):
        built = build_zip([Member(b'a.txt', b'hi'), Member(b'b.txt', b'there')])

        location = locate_central_directory(BytesIO(built.data))

        self.assertEqual(location.eocd_offset, built.eocd_offset)
        self.assertEqual(location.directory_offset, built.directory_offset)
        self.assertEqual(location.directory_size, built.eocd_offset - built.directory_offset)
        self.assertEqual(location.entry_count, 2)

    def test_with_archive_comment_and_prefix(self):
        built = build_zip(
            [Member(b'a.txt', b'hi')], prefix=b'#!/bin/sh\nexit 0\n', archive_comment=b'This is an archive comment'
        )

        location = locate_central_directory(BytesIO(built.data))

        self.assertEqual(location.eocd_offset, built.eocd_offset)
        self.assertEqual(location.directory_offset, built.directory_offset)
        self.assertEqual(location.entry_count, 1)


class ReadZipEntriesTest(unittest.TestCase):
    def test_not_a_zip(self):
        self.assertEqual(list(read_zip_entries(BytesIO(b'Hello, world! ' * 10), 'cp437')), [])

    def test_fields(self):
        built = build_zip([
            Member(b'a.txt', b'hi', comment=b'first file'),
            Member(b'dir/', b''),
            Member(b'dir/b.bin', b'\x00' * 100, deflate=True),
        ], prefix=b'junk')

        entries = list(read_zip_entries(BytesIO(built.data), 'cp437'))

        self.assertEqual([entry.name for entry in entries], ['a.txt', 'dir/', 'dir/b.bin'])
        self.assertEqual([entry.header_offset for entry in entries], list(built.header_offsets))

        first = entries[0]
        self.assertEqual(first.comment, 'first file')
        self.assertEqual(first.crc32, zlib.crc32(b'hi'))
        self.assertEqual(first.compressed_size, 2)
        self.assertEqual(first.original_size, 2)
        self.assertEqual(first.data_offset, built.header_offsets[0] + 30 + 5)
        self.assertFalse(first.deflated)
        self.assertTrue(first.is_file)

        self.assertTrue(entries[1].is_directory)
        self.assertFalse(entries[1].is_file)

        third = entries[2]
        self.assertTrue(third.deflated)
        self.assertEqual(third.compression_method, ZipCompressionMethod.DEFLATE)
        self.assertEqual(third.original_size, 100)
        self.assertLess(third.compressed_size, 100)
        self.assertEqual(third.comment, '')

    def test_bad_slots_are_skipped(self):
        built = build_zip([Member(b'a.txt', b'hi'), Member(b'b.txt', b'yo')], junk_slots=2)

        entries = list(read_zip_entries(BytesIO(built.data), 'cp437'))

        self.assertEqual([entry.name for entry in entries], ['a.txt', 'b.txt'])

    def test_utf8_names(self):
        built = build_zip([
            Member('héllo/wörld.txt'.encode('utf-8'), b'x', flags=UTF8_FLAG, comment='ü'.encode('utf-8'))
        ])

        entry, = read_zip_entries(BytesIO(built.data), 'cp437')

        self.assertEqual(entry.name, 'héllo/wörld.txt')
        self.assertEqual(entry.comment, 'ü')

    def test_legacy_encoding(self):
        built = build_zip([Member(b'caf\x82-\xe9.txt', b'x')])

        entry, = read_zip_entries(BytesIO(built.data), 'cp437')
        self.assertEqual(entry.name, 'café-Θ.txt')

        entry, = read_zip_entries(BytesIO(built.data), 'latin-1')
        self.assertEqual(entry.name, 'caf\x82-é.txt')

    def test_truncated_directory(self):
        built = build_zip([Member(b'a.txt', b'hi')])

        data = bytearray(built.data)
        struct.pack_into('<H', data, built.eocd_offset + 10, 100)

        with self.assertRaises(ZipArchiveCorruptError):
            list(read_zip_entries(BytesIO(bytes(data)), 'cp437'))

    def test_local_header_past_end(self):
        built = build_zip([Member(b'a.txt', b'hi')])

        data = bytearray(built.data)
        struct.pack_into('<I', data, built.directory_offset + 42, 1000000)

        with self.assertRaises(ZipArchiveCorruptError):
            list(read_zip_entries(BytesIO(bytes(data)), 'cp437'))


class ResolveDataOffsetTest(unittest.TestCase):
    def test_uses_local_extra_length(self):
        built = build_zip([
            Member(b'first.txt', b'abc', local_extra=b'\x55\x54\x05\x00\x01\x00\x00\x00\x00'),
            Member(b'second.txt', b'defg', local_extra=b'', central_extra=b'\x55\x54\x01\x00\x00'),
        ])

        fileobj = BytesIO(built.data)

        self.assertEqual(resolve_data_offset(fileobj, built.header_offsets[0]), built.header_offsets[0] + 30 + 9 + 9)
        self.assertEqual(resolve_data_offset(fileobj, built.header_offsets[1]), built.header_offsets[1] + 30 + 10)

        entries = list(read_zip_entries(fileobj, 'cp437'))
        for entry in entries:
            self.assertGreater(entry.data_offset, entry.header_offset)

        self.assertEqual(built.data[entries[0].data_offset:entries[0].data_offset + 3], b'abc')
        self.assertEqual(built.data[entries[1].data_offset:entries[1].data_offset + 4], b'defg')

    def test_preserves_position(self):
        built = build_zip([Member(b'a.txt', b'hi')])

        fileobj = BytesIO(built.data)
        fileobj.seek(7)

        resolve_data_offset(fileobj, 0)

        self.assertEqual(fileobj.tell(), 7)
