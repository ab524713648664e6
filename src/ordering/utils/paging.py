"""Exhaustive reads over Protean querysets, which return one page per call."""

from protean.core.queryset import QuerySet

PAGE_SIZE = 100


def fetch_all(query: QuerySet, page_size: int = PAGE_SIZE) -> list:
    """Collect every record matching ``query`` by walking it page by page."""
    records: list = []
    offset = 0
    while True:
        page = query.limit(page_size).offset(offset).all()
        records.extend(page.items)
        if len(page.items) < page_size:
            return records
        offset += page_size
