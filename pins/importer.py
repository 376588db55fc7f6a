"""
pins/importer.py -- Import a Pinboard JSON export for one user.

Pinboard exports a list of objects:

    {"href": "...", "description": "<title>", "extended": "<notes>",
     "time": "2020-01-31T12:00:00Z", "toread": "yes"|"no", "tags": "a b c", ...}

Each entry goes through PinService.create_pin() so imported pins obey the same
rules as pins created over the API. Entries that fail (invalid URL, duplicate
URL, bad tag) are skipped and counted, never fatal. The original bookmark
time is kept as created_at.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from auth.access import AccessControl
from core.errors import ErrorKind, PinSquirrelError
from pins.service import PinService

logger = logging.getLogger("pinsquirrel.importer")


@dataclass
class ImportResult:
    imported: int = 0
    duplicates: int = 0
    invalid: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.imported + self.duplicates + self.invalid


def load_pinboard_export(path: str | Path) -> list[dict[str, Any]]:
    """Read and shape-check a Pinboard export file. Raises ValueError on bad input."""
    file_path = Path(path).resolve()
    if not file_path.is_file():
        raise ValueError(f"'{path}' is not a readable file.")
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"'{path}' is not valid JSON: {e}") from e
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError("A Pinboard export must be a JSON list of objects.")
    return data


def _created_at(raw: str) -> str:
    """Pinboard times are ISO 8601 in UTC with a Z suffix. Unparseable -> now."""
    try:
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return ""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def import_pinboard(
    service: PinService,
    ac: AccessControl,
    user_id: str,
    entries: Iterable[dict[str, Any]],
) -> ImportResult:
    result = ImportResult()
    for index, entry in enumerate(entries):
        url = str(entry.get("href") or "").strip()
        title = str(entry.get("description") or "").strip() or url
        try:
            service.create_pin(
                ac,
                user_id,
                url=url,
                title=title[:200],
                description=str(entry.get("extended") or "").strip() or None,
                read_later=entry.get("toread") == "yes",
                tag_names=[t for t in str(entry.get("tags") or "").split() if t],
                created_at=_created_at(str(entry.get("time") or "")),
            )
        except PinSquirrelError as exc:
            if exc.kind is ErrorKind.DUPLICATE_PIN:
                result.duplicates += 1
            else:
                result.invalid += 1
                result.errors.append(f"entry {index}: {exc.message}")
            continue
        result.imported += 1
        if result.imported % 100 == 0:
            logger.info("Imported %d pins...", result.imported)

    logger.info(
        "Pinboard import finished: %d imported, %d duplicates, %d invalid",
        result.imported,
        result.duplicates,
        result.invalid,
    )
    return result
