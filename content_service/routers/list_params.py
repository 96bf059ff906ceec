"""
Query parameters shared by the list endpoints.
"""

import json
from typing import Any, List, Optional, Sequence

from fastapi import HTTPException, Query, status

from ..repositories.descriptor import EntityDescriptor
from ..repositories.filters import FilterExpression, ListOptions, compile_list_options


def parse_filter(raw: Optional[str]) -> Optional[FilterExpression]:
    """
    Decode the ``filter`` query parameter.

    Raises:
        HTTPException: 400 if it is not a JSON object or array of objects
    """
    if raw is None or raw == "":
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"filter is not valid JSON: {e.msg}",
        ) from None
    if not isinstance(value, (dict, list)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="filter must be an object or an array of objects",
        )
    return value


async def list_options(
    limit: Optional[int] = Query(None, description="Maximum rows to return"),
    offset: Optional[int] = Query(None, description="Rows to skip"),
    order_by: Optional[List[str]] = Query(
        None, description="Fields to order by, prefix with ! for descending"
    ),
) -> ListOptions:
    return ListOptions(limit=limit, offset=offset, order_bys=order_by)


def is_plain_listing(filters: Any, options: ListOptions) -> bool:
    """Whether a listing is the default-ordered collection a snapshot can serve."""
    return not filters and not options.order_bys


def page(
    descriptor: EntityDescriptor,
    items: Sequence[Any],
    options: ListOptions,
    limit_default: int,
    limit_max: int,
) -> list:
    """Apply limit and offset to an in-memory collection the way list queries do."""
    compiled = compile_list_options(descriptor, options, limit_default, limit_max)
    return list(items[compiled.offset : compiled.offset + compiled.limit])
