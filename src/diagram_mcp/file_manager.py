"""Temp-file storage for rendered artifacts."""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Iterable, Union

from .errors import DeliveryError, PathNotAllowedError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = frozenset({"svg", "png", "jpg", "jpeg", "pdf"})

Content = Union[str, bytes]


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


class FileManager:
    """Writes artifacts under one temp directory, which is also the static root.

    When ``allowed_dirs`` is non-empty every write target must resolve inside
    one of them.
    """

    def __init__(self, temp_dir: Path, allowed_dirs: Iterable[Union[str, Path]] = ()):
        self._temp_dir = Path(temp_dir).expanduser().resolve()
        self._allowed_dirs = [Path(d).expanduser().resolve() for d in allowed_dirs]

    @property
    def temp_dir(self) -> Path:
        return self._temp_dir

    @property
    def allowed_dirs(self) -> list[Path]:
        return list(self._allowed_dirs)

    def is_allowed(self, path: Union[str, Path]) -> bool:
        if not self._allowed_dirs:
            return True
        resolved = Path(path).expanduser().resolve()
        return any(_is_within(resolved, allowed) for allowed in self._allowed_dirs)

    def ensure_allowed(self, path: Union[str, Path]) -> None:
        if not self.is_allowed(path):
            logger.warning(
                "event=path_not_allowed path=%s allowed_dirs=%s", path, self._allowed_dirs
            )
            raise PathNotAllowedError(path, self._allowed_dirs)

    def path_for(self, filename: str) -> Path:
        return self._temp_dir / filename

    async def ensure_temp_dir(self) -> Path:
        await asyncio.to_thread(self._temp_dir.mkdir, parents=True, exist_ok=True)
        return self._temp_dir

    async def save_temp_file(self, data: Content, fmt: str) -> str:
        """Write ``data`` to ``<uuid>.<fmt>`` in the temp dir and return the filename."""
        fmt = _check_format(fmt)
        _check_content(data)

        filename = f"{uuid.uuid4()}.{fmt}"
        file_path = self.path_for(filename)
        self.ensure_allowed(file_path)

        await self.ensure_temp_dir()
        logger.info("event=save_temp_file path=%s", file_path)
        await _write(file_path, data)
        return filename

    async def save_to_path(self, path: Union[str, Path], data: Content, fmt: str) -> Path:
        """Write a copy of an artifact to a caller-chosen path.

        The format extension is appended when the path lacks it.
        """
        fmt = _check_format(fmt)
        _check_content(data)

        target = Path(path).expanduser()
        suffixes = {".jpg", ".jpeg"} if fmt in ("jpg", "jpeg") else {f".{fmt}"}
        if target.suffix.lower() not in suffixes:
            target = target.with_name(f"{target.name}.{fmt}")
        target = target.resolve()
        self.ensure_allowed(target)

        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        logger.info("event=save_file path=%s", target)
        await _write(target, data)
        return target

    async def purge(self) -> int:
        """Delete every file in the temp dir. Never raises; returns the count deleted."""
        try:
            if _is_protected(self._temp_dir):
                logger.warning(
                    "event=purge_refused temp_dir=%s reason=protected_location",
                    self._temp_dir,
                )
                return 0
            await self.ensure_temp_dir()
            return await asyncio.to_thread(self._purge_sync)
        except Exception:
            logger.exception("event=purge_failed temp_dir=%s", self._temp_dir)
            return 0

    def _purge_sync(self) -> int:
        deleted = 0
        for entry in sorted(self._temp_dir.iterdir()):
            try:
                entry.unlink()
                deleted += 1
            except OSError as e:
                logger.warning("event=purge_skip file=%s error=%s", entry.name, e)
        if deleted:
            logger.info("event=purge_done temp_dir=%s deleted=%d", self._temp_dir, deleted)
        return deleted


def _check_format(fmt: str) -> str:
    fmt = (fmt or "").strip().lower()
    if not fmt:
        raise DeliveryError("Format cannot be empty")
    if fmt not in SUPPORTED_FORMATS:
        raise DeliveryError(f"Invalid format: {fmt}")
    return fmt


def _check_content(data: Content) -> None:
    if not isinstance(data, (str, bytes, bytearray)):
        raise DeliveryError(f"Unsupported data type: {type(data).__name__}")
    if len(data) == 0:
        raise DeliveryError("Data cannot be empty")


async def _write(path: Path, data: Content) -> None:
    try:
        if isinstance(data, str):
            await asyncio.to_thread(path.write_text, data, encoding="utf-8")
        else:
            await asyncio.to_thread(path.write_bytes, bytes(data))
    except OSError as e:
        raise DeliveryError(f"Could not write {path}: {e}") from e


def _is_protected(directory: Path) -> bool:
    """Directories the startup sweep must never empty."""
    resolved = directory.resolve()
    protected = {Path(resolved.anchor), Path.home().resolve(), Path.cwd().resolve()}
    return resolved in protected
