"""
I/O utilities for scenario-watcher.

Report services persist run reports through these helpers. Writes are
performed atomically by first writing to a temporary file in the target
directory and then renaming it into place, so a report reader never observes
a half-written file.

Functions
---------
atomic_write_json(path, data, *, indent=2, encoding='utf-8')
    Write a JSON object atomically to disk.
atomic_write_text(path, text, *, encoding='utf-8')
    Write a text document atomically to disk.
dump_report(path, report)
    Serialize a Pydantic model (with `.model_dump_json()`) to JSON atomically.
"""

from __future__ import annotations
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping


def atomic_write_text(
    path: Path,
    text: str,
    *,
    encoding: str = "utf-8",
) -> None:
    """
    Write a text document atomically to disk.

    A temporary file is created in the same directory as the target file,
    written in full, flushed + fsynced, and then renamed onto the final path
    via os.replace.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            delete=False,
            dir=path.parent,
            encoding=encoding,
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())

        os.replace(tmp_path, path)

        # fsync the directory entry on POSIX (Windows has no directory fsync)
        try:
            dir_fd = os.open(str(path.parent), os.O_DIRECTORY)
        except (AttributeError, NotImplementedError, OSError):
            dir_fd = None
        if dir_fd is not None:
            try:
                os.fsync(dir_fd)
            finally:
                os.close(dir_fd)

    finally:
        # temp file is left behind only when os.replace was never reached
        if tmp_path is not None and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


def atomic_write_json(
    path: Path,
    data: Mapping[str, Any],
    *,
    indent: int = 2,
    encoding: str = "utf-8",
) -> None:
    """
    Write a JSON object atomically to disk.

    Non-JSON values (datetimes, paths) are serialized with ``str``.
    """
    text = json.dumps(data, indent=indent, ensure_ascii=False, default=str)
    atomic_write_text(path, text, encoding=encoding)


def dump_report(path: Path, report) -> None:
    """
    Serialize a Pydantic model to JSON (atomically).

    Parameters
    ----------
    path : pathlib.Path
        Destination file path for the serialized report.
    report : pydantic.BaseModel
        Pydantic model instance to serialize. Must implement
        ``.model_dump_json()``.

    Notes
    -----
    Computed fields (e.g. ``duration_ms``, ``result``) are included, so the
    file can be summarized without re-running any aggregation.
    """
    atomic_write_json(path, json.loads(report.model_dump_json()))
