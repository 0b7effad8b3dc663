"""
Dependencias compartidas por los endpoints.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Query, Request

from packtrack.core.container import ServiceContainer

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 25
MAX_LIMIT = 250


@dataclass
class PageParams:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_page_params(
    page: int = Query(default=DEFAULT_PAGE, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=MAX_LIMIT),
    page_size: Optional[int] = Query(default=None, alias="pageSize", ge=1, le=MAX_LIMIT),
) -> PageParams:
    """``limit`` gana sobre su alias ``pageSize``."""
    return PageParams(page=page, limit=limit or page_size or DEFAULT_LIMIT)
