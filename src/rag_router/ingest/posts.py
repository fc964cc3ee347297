"""Loader for LinkedIn post CSV exports."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Any

from rag_router.errors import ValidationError
from rag_router.types import SourceRecord

logger = logging.getLogger(__name__)

POSTS_SOURCE = "linkedin_posts"
_CREATED_AT_COLUMN = "createdAt (TZ=America/Los_Angeles)"


def load_post_records(path: str | Path) -> list[SourceRecord]:
    """Read one `SourceRecord` per post with non-empty text.

    Each post is a single retrieval unit; feed the result to
    `IngestPipeline.ingest_records`. Engagement counters that fail to parse
    are stored as 0.
    """

    csv_path = Path(path)
    if not csv_path.is_file():
        raise ValidationError(f"CSV file not found: {csv_path}")

    records: list[SourceRecord] = []
    with csv_path.open(newline="", encoding="utf-8") as handle:
        for row in csv.DictReader(handle):
            text = (row.get("text") or "").replace("\r", "").replace("\n", " ").strip()
            if not text:
                continue
            records.append(_to_record(row, text, len(records)))

    logger.info(f"Loaded {len(records)} posts with text from {csv_path}")
    return records


def _to_record(row: dict[str, Any], text: str, position: int) -> SourceRecord:
    urn = (row.get("urn") or "").strip() or f"post-{position}"
    post_type = (row.get("type") or "").strip()
    author = f"{row.get('firstName') or ''} {row.get('lastName') or ''}".strip()
    metadata: dict[str, Any] = {
        "source": POSTS_SOURCE,
        "url": row.get("link") or None,
        "title": f"LinkedIn Post - {post_type}" if post_type else "LinkedIn Post",
        "author": author or None,
        "createdAt": row.get(_CREATED_AT_COLUMN) or None,
        "type": post_type or None,
        "originalUrn": urn,
        "hashtags": row.get("hashtags") or "",
        "engagement": {
            "impressions": _as_int(row.get("numImpressions")),
            "views": _as_int(row.get("numViews")),
            "reactions": _as_int(row.get("numReactions")),
            "comments": _as_int(row.get("numComments")),
            "shares": _as_int(row.get("numShares")),
            "engagementRate": _as_float(row.get("numEngagementRate")),
        },
    }
    return SourceRecord(id=urn, content=text, metadata=metadata)


def _as_int(raw: str | None) -> int:
    try:
        return int(float(raw)) if raw else 0
    except ValueError:
        return 0


def _as_float(raw: str | None) -> float:
    try:
        return float(raw) if raw else 0.0
    except ValueError:
        return 0.0
