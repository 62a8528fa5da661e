"""
Exit code lookup table.

The table is a YAML list of rows, each keyed by a signed integer ``code``.
Two rows are mandatory: the positive fallback (256) answers for unknown
positive codes and the negative fallback (-8000) for unknown zero or negative
codes. The table is built once at start-up and shared read-only.
"""

from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from bifrost.common.errors import ExitSpecLoadError
from bifrost.common.models.jobs import ExitSpecEntry

POSITIVE_FALLBACK_EXIT_CODE = 256
NEGATIVE_FALLBACK_EXIT_CODE = -8000


class ExitSpecTable:
    def __init__(self, entries: Mapping[int, ExitSpecEntry]):
        for code in (POSITIVE_FALLBACK_EXIT_CODE, NEGATIVE_FALLBACK_EXIT_CODE):
            if code not in entries:
                raise ExitSpecLoadError(f"Exit spec table has no fallback entry for code {code}")
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def from_rows(cls, rows: Iterable[Any]) -> "ExitSpecTable":
        if not isinstance(rows, list):
            raise ExitSpecLoadError("Exit spec table must be a list of rows")
        entries = {}
        for index, row in enumerate(rows):
            if not isinstance(row, dict):
                raise ExitSpecLoadError(f"Exit spec row {index} is not a mapping")
            if not isinstance(row.get("code"), int) or isinstance(row.get("code"), bool):
                raise ExitSpecLoadError(f"Exit spec row {index} has no integer code")
            try:
                entry = ExitSpecEntry.model_validate(row)
            except ValidationError as e:
                raise ExitSpecLoadError(f"Exit spec row {index} is invalid: {e}") from e
            entries[entry.code] = entry
        return cls(entries)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ExitSpecTable":
        try:
            with open(path, "r", encoding="utf-8") as f:
                rows = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ExitSpecLoadError(f"Failed to load exit spec table from {path}: {e}") from e
        return cls.from_rows(rows)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, code: int) -> bool:
        return code in self._entries

    def lookup(self, code: Optional[int]) -> Optional[ExitSpecEntry]:
        if code is None:
            return None
        entry = self._entries.get(code)
        if entry is not None:
            return entry
        fallback = POSITIVE_FALLBACK_EXIT_CODE if code > 0 else NEGATIVE_FALLBACK_EXIT_CODE
        return self._entries[fallback].model_copy(update={"code": code})
