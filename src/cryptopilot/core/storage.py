"""Safe, atomic file I/O with logging.

Every read returns a default instead of raising; every write is atomic
(``.tmp`` sibling + :func:`os.replace`) and logs its failure.  A broken
disk degrades persistence, it never stops a trading tick.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class FileStore:
    """Centralised file I/O: always logs errors, never silently swallows."""

    # -- plain text -------------------------------------------------------

    @staticmethod
    def read_text(path: Path, default: str = "") -> str:
        try:
            return path.read_text(encoding="utf-8", errors="ignore")
        except OSError as exc:
            logger.debug("read_text(%s) failed: %s", path, exc)
            return default

    @staticmethod
    def write_text(path: Path, content: str) -> bool:
        """Atomic write.  Returns ``False`` if the write failed."""
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(content, encoding="utf-8")
            os.replace(tmp, path)
        except OSError as exc:
            logger.error("write_text(%s) failed: %s", path, exc)
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            return False
        return True

    # -- JSON -------------------------------------------------------------

    @staticmethod
    def read_json(path: Path, default: Any = None) -> Any:
        """Read a JSON file, returning *default* if missing or corrupt."""
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return default
        except (OSError, json.JSONDecodeError, TypeError) as exc:
            logger.warning("read_json(%s) failed: %s", path, exc)
            return default
        return data if data is not None else default

    @staticmethod
    def write_json(path: Path, data: Any) -> bool:
        """Atomic JSON write with ``indent=2``."""
        try:
            payload = json.dumps(data, indent=2) + "\n"
        except (TypeError, ValueError) as exc:
            logger.error("write_json(%s): data not serialisable: %s", path, exc)
            return False
        return FileStore.write_text(path, payload)

    # -- JSON lines -------------------------------------------------------

    @staticmethod
    def append_jsonl(path: Path, record: dict[str, Any]) -> bool:
        """Append a single JSON-lines record."""
        try:
            line = json.dumps(record)
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except (OSError, TypeError, ValueError) as exc:
            logger.error("append_jsonl(%s) failed: %s", path, exc)
            return False
        return True

    @staticmethod
    def read_jsonl(path: Path) -> list[dict[str, Any]]:
        """Read all JSON-object lines; corrupt lines are logged and skipped."""
        records: list[dict[str, Any]] = []
        try:
            with path.open(encoding="utf-8") as fh:
                for lineno, line in enumerate(fh, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        record = json.loads(line)
                    except json.JSONDecodeError as exc:
                        logger.warning("%s:%d: skipping corrupt line: %s", path, lineno, exc)
                        continue
                    if isinstance(record, dict):
                        records.append(record)
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.error("read_jsonl(%s) failed: %s", path, exc)
        return records
