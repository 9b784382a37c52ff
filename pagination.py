import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Tuple

from fastapi import Query
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection

MAX_PAGE_SIZE = 100


@dataclass
class PageParams:
    page: int = 1
    limit: int = 10
    sort_by: str = "created_at"
    sort_order: str = "desc"

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def sort(self) -> List[Tuple[str, int]]:
        direction = DESCENDING if self.sort_order == "desc" else ASCENDING
        return [(self.sort_by, direction)]


def page_params_for(default_order: str = "desc"):
    def _params(
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
        sort_by: str = Query("created_at", pattern=r"^[A-Za-z_][A-Za-z0-9_.]*$"),
        sort_order: Literal["asc", "desc"] = Query(default_order),
    ) -> PageParams:
        return PageParams(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)
    return _params


page_params = page_params_for("desc")


def page_meta(page: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        "current_page": page,
        "total_pages": math.ceil(total / limit) if limit else 0,
        "total": total,
        "has_next_page": page * limit < total,
        "has_prev_page": page > 1,
    }


def paginate(
    collection: Collection, filter_dict: Dict[str, Any], params: PageParams
) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    docs = list(
        collection.find(filter_dict).sort(params.sort).skip(params.skip).limit(params.limit)
    )
    total = collection.count_documents(filter_dict)
    return docs, page_meta(params.page, params.limit, total)


def search_filter(term: str, fields: Iterable[str]) -> Dict[str, Any]:
    """Case-insensitive substring match of ``term`` against any of ``fields``."""
    pattern = re.escape(term.strip())
    return {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in fields]}


def contains(term: str) -> Dict[str, Any]:
    return {"$regex": re.escape(term.strip()), "$options": "i"}
