"""Flat JSON dataset stores for the FAQ and the interaction log.

Both datasets are JSON arrays on disk. Reads are lenient: a missing or
malformed file is treated as an empty collection so the pipeline keeps
serving answers. Writes are pretty-printed with 2-space indentation and
replace the file atomically.

The interaction log is shared by the web process and the MCP tool-provider
process. Appends are serialized in-process with an ``asyncio.Lock`` and
across processes with an advisory lock on a sibling ``.lock`` file, so
concurrent appends never lose records.
"""

import asyncio
import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List

from .exceptions import StoreUnreadable
from .models import InteractionRecord, KnowledgeEntry

try:
    import fcntl
except ImportError:  # Windows: in-process lock only
    fcntl = None

logger = logging.getLogger(__name__)

BOM = "\ufeff"


def read_json_strict(path: Path) -> Any:
    """Read a JSON file, tolerating a leading byte-order mark.

    Raises:
        StoreUnreadable: If the file is missing, unreadable or not valid JSON.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise StoreUnreadable(f"Cannot read {path}: {e}") from e
    if text.startswith(BOM):
        text = text[len(BOM):]
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise StoreUnreadable(f"Invalid JSON in {path}: {e}") from e


def read_json_list(path: Path) -> List[Any]:
    """Read a JSON array, returning ``[]`` when the file is missing or corrupt."""
    if not Path(path).exists():
        logger.debug(f"Dataset not found, treating as empty: {path}")
        return []
    try:
        data = read_json_strict(path)
    except StoreUnreadable as e:
        logger.warning(f"{e}; treating as empty")
        return []
    if not isinstance(data, list):
        logger.warning(f"Expected a JSON array in {path}; treating as empty")
        return []
    return data


def write_json(path: Path, value: Any) -> None:
    """Write ``value`` as pretty JSON, replacing ``path`` atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(value, indent=2, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp, path)


class KnowledgeStore:
    """Read-only view of ``faq.json``."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read_raw(self) -> List[Any]:
        return read_json_list(self.path)

    def entries(self) -> List[KnowledgeEntry]:
        return [
            KnowledgeEntry.model_validate(item)
            for item in self.read_raw()
            if isinstance(item, dict)
        ]

    async def aentries(self) -> List[KnowledgeEntry]:
        return await asyncio.to_thread(self.entries)


class LogStore:
    """Append-only store of interaction records in ``logs.json``."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def read(self) -> List[Dict[str, Any]]:
        return [item for item in read_json_list(self.path) if isinstance(item, dict)]

    async def aread(self) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.read)

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        if fcntl is None:
            yield
            return
        lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(lock_path, "a") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def append_sync(self, record: InteractionRecord) -> None:
        """Read the store, append ``record`` and write the store back."""
        with self._file_lock():
            records = read_json_list(self.path)
            records.append(record.to_json_dict())
            write_json(self.path, records)

    async def append(self, record: InteractionRecord) -> None:
        async with self._lock:
            await asyncio.to_thread(self.append_sync, record)
        logger.debug(f"Logged interaction intent={record.intent} channel={record.channel}")
