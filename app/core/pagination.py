from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from fastapi import Query

MAX_PAGE_SIZE = 100


@dataclass
class Pagination:
    page: int
    page_size: int

    @property
    def start(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def end(self) -> int:
        """Inclusive upper bound for PostgREST ``range``."""
        return self.start + self.page_size - 1

    def wrap(self, data: List[Dict[str, Any]], total: Optional[int]) -> Dict[str, Any]:
        total = total or 0
        return {
            "data": data,
            "total": total,
            "page": self.page,
            "pageSize": self.page_size,
            "hasMore": total > self.page * self.page_size,
        }


def pagination(default_page_size: int = 20) -> Callable[..., Pagination]:
    """Query-parameter dependency for ``page`` and ``pageSize`` (capped at 100)."""
    def dependency(
        page: int = Query(1, ge=1),
        page_size: int = Query(default_page_size, alias="pageSize", ge=1),
    ) -> Pagination:
        return Pagination(page=page, page_size=min(page_size, MAX_PAGE_SIZE))
    return dependency
