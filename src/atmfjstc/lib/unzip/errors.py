from typing import Optional


class BadZipArchiveError(Exception):
    """
    Base class for all exceptions thrown when a ZIP archive cannot be read or extracted as requested.
    """


class ZipArchiveCorruptError(BadZipArchiveError):
    archive_name: Optional[str]

    def __init__(self, archive_name: Optional[str], detail: Optional[str] = None):
        self.archive_name = archive_name

        quoted_name = f" '{archive_name}'" if archive_name is not None else ''
        super().__init__(f"ZIP archive{quoted_name} is corrupt or malformed{f': {detail}' if detail else ''}")


class ZipEntryNotFoundError(BadZipArchiveError, KeyError):
    entry_name: str

    def __init__(self, entry_name: str):
        self.entry_name = entry_name

        super().__init__(f"There is no entry named '{entry_name}' in the archive")

    def __str__(self) -> str:
        # KeyError would otherwise show the repr() of the message
        return self.args[0]


class ZipUnsafeEntryPathError(BadZipArchiveError):
    entry_name: str

    def __init__(self, entry_name: str):
        self.entry_name = entry_name

        super().__init__(f"Entry '{entry_name}' would be extracted outside of the destination directory")
