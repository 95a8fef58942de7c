# backend/imagestore/utils/file_helpers.py
"""
File Helper Functions

Async wrappers around blocking filesystem calls. Each runs in a worker
thread so the event loop keeps serving other jobs while the disk is busy.
"""

import asyncio
import os
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


def _write_bytes_durably(file_path: Path, data: bytes) -> None:
    with open(file_path, "wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())


async def write_file(file_path: PathLike, data: bytes) -> None:
    """Write ``data`` to ``file_path`` and fsync it before returning."""
    await asyncio.to_thread(_write_bytes_durably, Path(file_path), data)


async def ensure_directory_exists(directory_path: PathLike) -> Path:
    """Create a directory (and parents) if missing."""
    path = Path(directory_path)
    await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)
    return path


async def is_regular_file(file_path: PathLike) -> bool:
    """True if the path exists and is a regular file."""
    return await asyncio.to_thread(Path(file_path).is_file)


async def rename_file(source: PathLike, target: PathLike) -> None:
    """Rename ``source`` to ``target``. Raises OSError if the source is missing."""
    await asyncio.to_thread(os.rename, source, target)


def replace_extension(file_path: str, extension: str) -> str:
    """Return ``file_path`` with its last suffix replaced by ``extension``."""
    extension = extension.lstrip(".")
    return str(Path(file_path).with_suffix(f".{extension}"))
