"""
Edit suggestion repository.

Edits move one way: PENDING to ACCEPTED or REJECTED. Once an edit reaches
a terminal status nothing about it may change.
"""

from typing import Any, Dict

from pydantic import BaseModel

from ..domain.entities import Edit, EditForCreate, EditForResult, EditForUpdate, EditStatus
from ..domain.exceptions import InvalidTransition
from ..models import EditRow
from .base import BaseBmc
from .descriptor import (
    ENUM_OPS,
    ID_OPS,
    REF_OPS,
    TIME_OPS,
    EntityDescriptor,
    FieldSpec,
    OpKind,
    to_int,
    to_utc_datetime,
)

# status -> statuses it may move to
ALLOWED_TRANSITIONS = {
    EditStatus.PENDING: frozenset(
        {EditStatus.PENDING, EditStatus.ACCEPTED, EditStatus.REJECTED}
    ),
    EditStatus.ACCEPTED: frozenset(),
    EditStatus.REJECTED: frozenset(),
}


class EditBmc(BaseBmc):
    descriptor = EntityDescriptor(
        name="edits",
        table=EditRow.__table__,
        fields=(
            FieldSpec("id", filter_ops=ID_OPS, coerce=to_int),
            FieldSpec("editor_id", filter_ops=REF_OPS, coerce=to_int),
            FieldSpec("post_id", filter_ops=REF_OPS, coerce=to_int),
            FieldSpec("new_content", filter_ops=frozenset({OpKind.TEXT})),
            FieldSpec("status", filter_ops=ENUM_OPS, coerce=EditStatus),
            FieldSpec("created_at", filter_ops=TIME_OPS, coerce=to_utc_datetime),
            FieldSpec("updated_at", filter_ops=TIME_OPS, coerce=to_utc_datetime),
        ),
        timestamps=True,
    )
    entity_model = Edit
    result_model = EditForResult
    create_schema = EditForCreate
    update_schema = EditForUpdate

    @classmethod
    def prepare_create(cls, payload: BaseModel) -> Dict[str, Any]:
        values = payload.model_dump()
        values["status"] = EditStatus.PENDING
        return values

    @classmethod
    def check_transition(cls, current: Edit, changes: Dict[str, Any]) -> None:
        if not changes:
            return

        if current.status.is_terminal:
            raise InvalidTransition(
                cls.descriptor.name,
                current.id,
                f"edit is {current.status.value} and can no longer change",
            )

        target = changes.get("status")
        if target is not None and target not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransition(
                cls.descriptor.name,
                current.id,
                f"cannot move from {current.status.value} to {EditStatus(target).value}",
            )
