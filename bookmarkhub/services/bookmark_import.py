from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import islice

from bs4 import BeautifulSoup, Tag
from sqlalchemy.exc import SQLAlchemyError

from bookmarkhub.extensions import db
from bookmarkhub.models import Bookmark, utcnow
from bookmarkhub.services.common import parse_tags


logger = logging.getLogger(__name__)

BATCH_SIZE = 100


@dataclass
class ImportedBookmark:
    url: str
    title: str
    created_at: datetime
    tags: list[str] = field(default_factory=list)


def _parse_add_date(raw) -> datetime | None:
    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value.isdigit():
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _entry_from_anchor(anchor: Tag) -> ImportedBookmark | None:
    href_value = anchor.get("href")
    href = href_value.strip() if isinstance(href_value, str) else ""
    if not href:
        return None
    text = anchor.get_text(strip=True)
    return ImportedBookmark(
        url=href,
        title=text or href,
        created_at=_parse_add_date(anchor.get("add_date")) or utcnow(),
        tags=parse_tags(anchor.get("tags") or ""),
    )


class BookmarkFile:
    """Anchors of a browser bookmark export, parsed on demand.

    Iterating yields :class:`ImportedBookmark` records in document order.
    Every call to ``iter()`` starts again from the first anchor.
    """

    def __init__(self, html: str):
        self._soup = BeautifulSoup(html or "", "lxml")

    def __iter__(self) -> Iterator[ImportedBookmark]:
        for anchor in self._soup.find_all("a"):
            if not isinstance(anchor, Tag):
                continue
            entry = _entry_from_anchor(anchor)
            if entry is not None:
                yield entry


def parse_bookmark_html(html: str) -> BookmarkFile:
    return BookmarkFile(html)


def select_entries(
    entries: Iterable[ImportedBookmark], selected: set[int]
) -> Iterator[ImportedBookmark]:
    for index, entry in enumerate(entries):
        if index in selected:
            yield entry


@dataclass
class BatchResult:
    index: int
    size: int
    inserted: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ImportReport:
    batches: list[BatchResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(batch.size for batch in self.batches)

    @property
    def inserted(self) -> int:
        return sum(batch.inserted for batch in self.batches)

    @property
    def failed(self) -> int:
        return self.total - self.inserted

    @property
    def failed_batches(self) -> list[BatchResult]:
        return [batch for batch in self.batches if not batch.ok]

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_batches) and self.inserted > 0

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "inserted": self.inserted,
            "failed": self.failed,
            "batches": [
                {
                    "index": batch.index,
                    "size": batch.size,
                    "inserted": batch.inserted,
                    "error": batch.error,
                }
                for batch in self.batches
            ],
        }


def chunked(items: Iterable, size: int) -> Iterator[list]:
    iterator = iter(items)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk


def _commit_batch(rows: list[Bookmark]) -> None:
    db.session.add_all(rows)
    db.session.commit()


def insert_bookmarks(
    user_id: str,
    entries: Iterable[ImportedBookmark],
    collection_id: int | None = None,
    batch_size: int = BATCH_SIZE,
) -> ImportReport:
    """Insert ``entries`` for ``user_id`` in sequential, independent batches.

    A failed batch is rolled back and recorded; batches already committed
    stay committed and the remaining batches are still attempted.
    """
    report = ImportReport()
    for index, chunk in enumerate(chunked(entries, batch_size), start=1):
        rows = [
            Bookmark(
                user_id=user_id,
                collection_id=collection_id,
                url=entry.url,
                title=entry.title,
                tags=list(entry.tags),
                created_at=entry.created_at,
            )
            for entry in chunk
        ]
        try:
            _commit_batch(rows)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning(
                "Import batch %d for user %s failed (%d rows): %s",
                index,
                user_id,
                len(rows),
                exc,
            )
            report.batches.append(
                BatchResult(index=index, size=len(rows), inserted=0, error=str(exc)[:300])
            )
            continue
        report.batches.append(BatchResult(index=index, size=len(rows), inserted=len(rows)))
    return report
