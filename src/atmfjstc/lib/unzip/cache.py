from typing import Callable, Dict, Iterable, Optional, Tuple

from .entry import ZipEntry


class ZipEntryCache:
    """
    Holds the list of entries for an archive, decoding it at most once.

    The loader is called the first time any of the entry data is requested. If it succeeds, its results are kept for
    the lifetime of the cache and the loader is released; if it fails, the exception propagates and the next request
    will try again.
    """

    _loader: Optional[Callable[[], Iterable[ZipEntry]]]

    _entries: Optional[Tuple[ZipEntry, ...]] = None
    _entries_by_name: Optional[Dict[str, ZipEntry]] = None
    _file_names: Optional[Tuple[str, ...]] = None

    def __init__(self, loader: Callable[[], Iterable[ZipEntry]]):
        self._loader = loader

    @property
    def is_loaded(self) -> bool:
        return self._entries is not None

    def entries(self) -> Tuple[ZipEntry, ...]:
        self._ensure_loaded()

        return self._entries

    def file_names(self) -> Tuple[str, ...]:
        self._ensure_loaded()

        return self._file_names

    def get(self, name: str) -> Optional[ZipEntry]:
        """
        Gets the entry with the given name. If several entries have the same name, the first one in the central
        directory is returned.
        """
        self._ensure_loaded()

        return self._entries_by_name.get(name)

    def _ensure_loaded(self):
        if self._entries is not None:
            return

        entries = tuple(self._loader())

        entries_by_name = dict()
        for entry in entries:
            entries_by_name.setdefault(entry.name, entry)

        self._entries_by_name = entries_by_name
        self._file_names = tuple(entry.name for entry in entries if entry.is_file)
        self._entries = entries
        self._loader = None
