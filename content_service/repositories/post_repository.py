"""Post repository."""

from ..domain.entities import Post, PostForCreate, PostForUpdate
from ..models import EditRow, PostRow
from .base import BaseBmc
from .descriptor import (
    ID_OPS,
    NUMBER_OPS,
    STRING_OPS,
    TIME_OPS,
    EntityDescriptor,
    FieldSpec,
    OpKind,
    SortDirection,
    to_int,
    to_utc_datetime,
)


class PostBmc(BaseBmc):
    """Posts: heaviest first, cached as a full collection."""

    descriptor = EntityDescriptor(
        name="posts",
        table=PostRow.__table__,
        fields=(
            FieldSpec("id", filter_ops=ID_OPS, coerce=to_int),
            FieldSpec("title", filter_ops=STRING_OPS),
            FieldSpec("content", filter_ops=frozenset({OpKind.TEXT})),
            FieldSpec("weight", filter_ops=NUMBER_OPS, coerce=to_int),
            FieldSpec("created_at", filter_ops=TIME_OPS, coerce=to_utc_datetime),
            FieldSpec("updated_at", filter_ops=TIME_OPS, coerce=to_utc_datetime),
        ),
        default_sort=("weight", SortDirection.DESC),
        cached=True,
        timestamps=True,
        referenced_by=((EditRow.__table__, "post_id"),),
    )
    entity_model = Post
    result_model = Post
    create_schema = PostForCreate
    update_schema = PostForUpdate
