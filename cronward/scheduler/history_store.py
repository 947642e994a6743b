"""Append-only execution history.

The HistoryStore keeps one newline-delimited JSON file per task. Each line
is an ExecutionRecord. Files are pruned to the most recent records whenever
they grow past the retention limit.
"""

import asyncio
import errno
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from cronward.scheduler.exceptions import HistoryError
from cronward.scheduler.models import (
    ExecutionRecord,
    ExecutionStatus,
    HistoryStats,
    is_safe_task_id,
)

logger = logging.getLogger(__name__)

MAX_RECORDS = 1000
WRITE_ATTEMPTS = 3
RETRY_BACKOFF_SECONDS = 0.05

# Files up to this size are read whole; larger ones are scanned from the end
FULL_READ_MAX_BYTES = 64 * 1024
FULL_READ_MIN_LIMIT = 100
CHUNK_SIZE = 8192

TRANSIENT_ERRNOS = {errno.EBUSY, errno.EAGAIN, errno.ENOENT, errno.EACCES, errno.EINTR}

FileSignature = Tuple[int, int]


class HistoryStore:
    """Durable per-task execution log.

    Example:
        store = HistoryStore(Path("~/.local/share/cronward/history"))
        await store.record(record)
        recent = store.tail("backup", limit=10)
        stats = store.stats("backup")

    Attributes:
        _history_dir: Directory holding one <task_id>.jsonl file per task
        _line_counts: Cached line count per task, filled lazily
        _signatures: Size and mtime of each file as last seen by this store;
            a mismatch means another process appended and the count is stale
    """

    def __init__(
        self,
        history_dir: Path,
        max_records: int = MAX_RECORDS,
        retry_backoff: float = RETRY_BACKOFF_SECONDS,
    ) -> None:
        """Initialize the history store.

        Args:
            history_dir: Directory for history files. Created on first write.
            max_records: Records retained per task
            retry_backoff: Base delay between write attempts, in seconds
        """
        self._history_dir = Path(history_dir)
        self._max_records = max_records
        self._retry_backoff = retry_backoff
        self._line_counts: Dict[str, int] = {}
        self._signatures: Dict[str, Optional[FileSignature]] = {}

    @property
    def history_dir(self) -> Path:
        return self._history_dir

    def path_for(self, task_id: str) -> Path:
        """History file for a task.

        Raises:
            HistoryError: If the id would escape the history directory
        """
        if not is_safe_task_id(task_id):
            raise HistoryError(f"Task id '{task_id}' cannot be used as a history file name", task_id)
        return self._history_dir / f"{task_id}.jsonl"

    async def record(self, record: ExecutionRecord) -> bool:
        """Append a record to its task's history file.

        Transient filesystem errors are retried with a short backoff. A write
        that still fails is logged and dropped.

        Returns:
            True if the record was written
        """
        if not is_safe_task_id(record.task_id):
            logger.error(f"Refusing to write history for unsafe task id '{record.task_id}'")
            return False

        line = json.dumps(record.to_dict()) + "\n"

        for attempt in range(1, WRITE_ATTEMPTS + 1):
            try:
                self._append_line(record.task_id, line)
                break
            except OSError as e:
                if attempt < WRITE_ATTEMPTS and e.errno in TRANSIENT_ERRNOS:
                    logger.debug(
                        f"History write for '{record.task_id}' failed "
                        f"(attempt {attempt}/{WRITE_ATTEMPTS}): {e}"
                    )
                    await asyncio.sleep(self._retry_backoff * attempt)
                    continue
                logger.error(f"Failed to write history for task '{record.task_id}': {e}")
                return False

        if self._line_counts.get(record.task_id, 0) > self._max_records:
            self._prune(record.task_id)

        return True

    def tail(self, task_id: str, limit: int = 10) -> List[ExecutionRecord]:
        """Read the most recent records for a task, newest first.

        Returns:
            Up to ``limit`` records; empty if the task has no history yet

        Raises:
            HistoryError: If the history file exists but cannot be read
        """
        if limit <= 0:
            return []

        path = self.path_for(task_id)
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return []
        except OSError as e:
            raise HistoryError(f"Failed to read history for task '{task_id}': {e}", task_id, str(path))

        try:
            if size <= FULL_READ_MAX_BYTES or limit > FULL_READ_MIN_LIMIT:
                return self._read_full(task_id, path, limit)
            return self._read_backward(path, limit)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise HistoryError(f"Failed to read history for task '{task_id}': {e}", task_id, str(path))

    def tail_all(self, limit: int = 10, per_task_limit: int = 20) -> List[ExecutionRecord]:
        """Merge the newest records of every task, newest first."""
        if not self._history_dir.exists():
            return []

        records: List[ExecutionRecord] = []
        for path in sorted(self._history_dir.glob("*.jsonl")):
            try:
                records.extend(self.tail(path.stem, min(limit, per_task_limit)))
            except HistoryError as e:
                logger.warning(f"Skipping history for {path.stem}: {e}")

        records.sort(key=lambda r: r.start_ts, reverse=True)
        return records[:limit]

    def stats(self, task_id: str) -> HistoryStats:
        """Aggregate statistics over the retained history of a task."""
        history = self.tail(task_id, self._max_records)
        if not history:
            return HistoryStats()

        successes = sum(1 for r in history if r.status == ExecutionStatus.SUCCESS)
        return HistoryStats(
            total=len(history),
            success=successes,
            failure=len(history) - successes,
            avg_elapsed_ms=round(sum(r.elapsed_ms for r in history) / len(history)),
            last_run_ts=history[0].start_ts,
        )

    def clear(self, task_id: str) -> None:
        """Delete a task's history file."""
        self._line_counts.pop(task_id, None)
        self._signatures.pop(task_id, None)
        path = self.path_for(task_id)
        if path.exists():
            path.unlink()
            logger.info(f"Cleared history for {task_id}")

    def _append_line(self, task_id: str, line: str) -> None:
        self._history_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(task_id)

        signature = self._signature(path)
        if task_id not in self._line_counts or self._signatures.get(task_id) != signature:
            self._line_counts[task_id] = self._count_lines(path)

        with open(path, "a", encoding="utf-8") as f:
            f.write(line)

        self._line_counts[task_id] += 1
        self._signatures[task_id] = self._signature(path)

    def _read_full(self, task_id: str, path: Path, limit: int) -> List[ExecutionRecord]:
        """Read and parse the whole file, then return the newest records."""
        lines = self._read_lines(path)
        self._line_counts[task_id] = len(lines)
        self._signatures[task_id] = self._signature(path)

        if len(lines) > self._max_records:
            self._prune(task_id)
            lines = lines[-self._max_records:]

        records: List[ExecutionRecord] = []
        for line in reversed(lines):
            record = self._parse_line(line)
            if record is None:
                continue
            records.append(record)
            if len(records) >= limit:
                break
        return records

    def _read_backward(self, path: Path, limit: int) -> List[ExecutionRecord]:
        """Scan fixed-size blocks from the end of the file toward the start."""
        records: List[ExecutionRecord] = []

        with open(path, "rb") as f:
            f.seek(0, os.SEEK_END)
            position = f.tell()
            remainder = b""

            while position > 0 and len(records) < limit:
                read_size = min(CHUNK_SIZE, position)
                position -= read_size
                f.seek(position)
                remainder = f.read(read_size) + remainder

                # The first piece may be a partial line; keep it for the next block
                pieces = remainder.split(b"\n")
                remainder = pieces[0]
                for piece in reversed(pieces[1:]):
                    self._collect(piece, records)
                    if len(records) >= limit:
                        break

            if position == 0 and len(records) < limit:
                self._collect(remainder, records)

        return records

    def _collect(self, raw: bytes, records: List[ExecutionRecord]) -> None:
        if not raw.strip():
            return
        record = self._parse_line(raw.decode("utf-8", errors="replace"))
        if record is not None:
            records.append(record)

    def _parse_line(self, line: str) -> Optional[ExecutionRecord]:
        try:
            return ExecutionRecord.from_dict(json.loads(line))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse history line ({e}): {line[:120]}")
            return None

    @staticmethod
    def _read_lines(path: Path) -> List[str]:
        # Undecodable bytes become U+FFFD so the line fails to parse and is skipped
        text = path.read_bytes().decode("utf-8", errors="replace")
        return [line for line in text.splitlines() if line.strip()]

    @staticmethod
    def _signature(path: Path) -> Optional[FileSignature]:
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        return (st.st_size, st.st_mtime_ns)

    def _count_lines(self, path: Path) -> int:
        if not path.exists():
            return 0
        count = 0
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE * 8), b""):
                count += chunk.count(b"\n")
        return count

    def _prune(self, task_id: str) -> None:
        """Atomically rewrite a history file keeping only the newest records."""
        path = self.path_for(task_id)
        try:
            lines = self._read_lines(path)
            kept = lines[-self._max_records:]

            fd, tmp_name = tempfile.mkstemp(
                dir=self._history_dir, prefix=f".{task_id}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    tmp.write("\n".join(kept) + "\n")
                os.replace(tmp_name, path)
            except OSError:
                Path(tmp_name).unlink(missing_ok=True)
                raise

            self._line_counts[task_id] = len(kept)
            self._signatures[task_id] = self._signature(path)
            logger.debug(f"Pruned history for {task_id}: {len(lines) - len(kept)} record(s) removed")
        except OSError as e:
            logger.error(f"Failed to prune history for task '{task_id}': {e}")
