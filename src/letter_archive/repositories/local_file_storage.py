"""Local filesystem implementation of FileStorage.

All paths handed in are relative to the storage root; anything that would
resolve outside of it is refused.
"""

import os
import shutil
from datetime import datetime, timezone
from pathlib import Path

from letter_archive.config import settings
from letter_archive.entities import FileStat
from letter_archive.errors import ArchiveError


class LocalFileStorage:
    """Filesystem rooted at one directory.

    This class satisfies the FileStorage protocol through structural
    typing - no explicit inheritance needed.
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize the storage.

        Args:
            root: Directory holding staged and permanent files. Created if missing.
        """
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def create(cls, root: str | Path | None = None) -> "LocalFileStorage":
        """Factory method to create LocalFileStorage with defaults.

        Args:
            root: Storage root. If None, uses settings.

        Returns:
            Configured LocalFileStorage
        """
        return cls(root=root or settings.storage_root)

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        candidate = (self._root / path).resolve()
        if candidate != self._root and self._root not in candidate.parents:
            raise ArchiveError.storage("Path escapes the storage root", path=path)
        return candidate

    def _relative(self, absolute: Path) -> str:
        return absolute.relative_to(self._root).as_posix()

    def write_file(self, path: str, content: bytes) -> None:
        target = self._resolve(path)
        partial = target.with_name(target.name + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(partial, "wb") as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(partial, target)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise ArchiveError.storage(f"Failed to write file: {e}", path=path) from e

    def read_file(self, path: str, limit: int | None = None) -> bytes:
        target = self._resolve(path)
        try:
            with open(target, "rb") as fh:
                return fh.read() if limit is None else fh.read(limit)
        except OSError as e:
            raise ArchiveError.storage(f"Failed to read file: {e}", path=path) from e

    def move_file(self, source: str, destination: str) -> None:
        src = self._resolve(source)
        dst = self._resolve(destination)
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            try:
                os.replace(src, dst)
            except OSError:
                if not src.exists():
                    raise
                # Different filesystem: copy then delete
                shutil.move(str(src), str(dst))
        except OSError as e:
            raise ArchiveError.storage(
                f"Failed to move file: {e}", source=source, destination=destination
            ) from e

    def delete_file(self, path: str) -> bool:
        target = self._resolve(path)
        try:
            target.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise ArchiveError.storage(f"Failed to delete file: {e}", path=path) from e

    def list_files(self, directory: str) -> list[str]:
        base = self._resolve(directory)
        if not base.is_dir():
            return []
        try:
            return sorted(self._relative(p) for p in base.rglob("*") if p.is_file())
        except OSError as e:
            raise ArchiveError.storage(f"Failed to list files: {e}", directory=directory) from e

    def stat_file(self, path: str) -> FileStat:
        target = self._resolve(path)
        try:
            stat = target.stat()
        except OSError as e:
            raise ArchiveError.storage(f"Failed to stat file: {e}", path=path) from e
        return FileStat(
            size=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def absolute_path(self, path: str) -> str:
        return str(self._resolve(path))
