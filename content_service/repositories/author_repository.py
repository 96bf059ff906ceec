"""Author repository."""

from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel

from ..core.context import Ctx
from ..core.security import hash_password, verify_password
from ..domain.entities import Author, AuthorForCreate, AuthorForResult, AuthorForUpdate
from ..models import AuthorRow, EditRow
from .base import BaseBmc, ModelManager
from .descriptor import ID_OPS, STRING_OPS, EntityDescriptor, FieldSpec, to_int

logger = structlog.get_logger(__name__)


class AuthorBmc(BaseBmc):
    """Authors: unique email, password stored only as a bcrypt hash."""

    descriptor = EntityDescriptor(
        name="authors",
        table=AuthorRow.__table__,
        fields=(
            FieldSpec("id", filter_ops=ID_OPS, coerce=to_int),
            FieldSpec("name", filter_ops=STRING_OPS),
            FieldSpec("email", filter_ops=STRING_OPS),
            FieldSpec("password_hash", exposed=False),
        ),
        cached=True,
        referenced_by=((EditRow.__table__, "editor_id"),),
    )
    entity_model = Author
    result_model = AuthorForResult
    create_schema = AuthorForCreate
    update_schema = AuthorForUpdate

    @classmethod
    def prepare_create(cls, payload: BaseModel) -> Dict[str, Any]:
        return {
            "name": payload.name,
            "email": payload.email.lower(),
            "password_hash": hash_password(payload.password),
        }

    @classmethod
    def prepare_update(cls, payload: BaseModel) -> Dict[str, Any]:
        changes = super().prepare_update(payload)
        if "email" in changes:
            changes["email"] = changes["email"].lower()
        return changes

    @classmethod
    async def authenticate(
        cls, mm: ModelManager, email: str, password: str
    ) -> Optional[Author]:
        """
        Check login credentials.

        Returns:
            The author when the password matches, None otherwise
        """
        author = await cls.first(Ctx.root_ctx(), mm, {"email": email.lower()})
        if author is None or not verify_password(password, author.password_hash):
            logger.info("Authentication failed", email=email)
            return None
        return author
