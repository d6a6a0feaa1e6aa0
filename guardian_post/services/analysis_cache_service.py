"""
Write-through analysis cache.

In-memory map news_id -> AnalysisResult, mirrored to a single JSON document.
The document is loaded once; every `set` rewrites it through a temp file and
`os.replace`. I/O failures are logged and never raised: on read the cache
starts cold, on write the in-memory mirror stays authoritative.

No eviction: entries live for the lifetime of the document.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterator, Optional

from guardian_post.config import settings
from guardian_post.core.logging import get_logger
from guardian_post.models.analysis import AnalysisResult, AnalysisValidationError, validate_analysis

logger = get_logger().bind(module="analysis_cache_service")


class AnalysisCache:
    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else Path(settings.ANALYSIS_CACHE_PATH)
        self._entries: Dict[str, AnalysisResult] = {}
        self._loaded = False

    # ---- lifecycle -------------------------------------------------------

    def load(self) -> int:
        """Read the persisted document into memory. Returns the entry count."""
        self._loaded = True
        self._entries = {}
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("analysis_cache_cold_start", path=str(self.path))
            return 0
        except OSError as exc:
            logger.error("analysis_cache_read_error", path=str(self.path), error=str(exc))
            return 0

        try:
            data = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError as exc:
            logger.error("analysis_cache_parse_error", path=str(self.path), error=str(exc))
            return 0

        if not isinstance(data, dict):
            logger.error(
                "analysis_cache_invalid_root",
                path=str(self.path),
                root_type=type(data).__name__,
            )
            return 0

        skipped = 0
        for news_id, raw in data.items():
            if not isinstance(raw, dict):
                skipped += 1
                continue
            try:
                self._entries[str(news_id)] = validate_analysis(raw)
            except AnalysisValidationError as exc:
                skipped += 1
                logger.warning("analysis_cache_entry_invalid", news_id=news_id, error=str(exc))

        logger.info(
            "analysis_cache_loaded",
            path=str(self.path),
            entries=len(self._entries),
            skipped=skipped,
        )
        return len(self._entries)

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def flush(self) -> bool:
        """
        Persist the full mirror atomically (write temp, then replace).
        Returns False when the write failed; the failure is logged.
        """
        payload = {news_id: result.to_json_dict() for news_id, result in self._entries.items()}
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
            tmp_name = None
            return True
        except OSError as exc:
            logger.error("analysis_cache_write_error", path=str(self.path), error=str(exc))
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    # ---- mapping API -----------------------------------------------------

    def get(self, news_id: str) -> Optional[AnalysisResult]:
        self._ensure_loaded()
        return self._entries.get(news_id)

    def set(self, news_id: str, result: AnalysisResult) -> None:
        self._ensure_loaded()
        self._entries[news_id] = result
        self.flush()

    def __contains__(self, news_id: object) -> bool:
        self._ensure_loaded()
        return news_id in self._entries

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        self._ensure_loaded()
        return iter(list(self._entries))
