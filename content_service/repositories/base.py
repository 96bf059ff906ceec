"""
Generic entity repository ("backend model controller").

One implementation of create/get/list/update/delete serves every entity.
An entity plugs in by subclassing ``BaseBmc`` and declaring its descriptor,
payload schemas and, where it has any, transition rules.

Every operation:
- runs as a single transaction against the primary store,
- can be bounded by a deadline (``timeout`` argument, else the manager's
  default); on expiry the transaction is rolled back and ``Timeout`` raised,
- translates store failures into the domain exceptions,
- on a successful mutation of a cached entity, asks the cache synchronizer
  to refresh that entity's snapshot. Cache trouble never fails the call.
"""

import asyncio
import re
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete as sql_delete
from sqlalchemy import insert, select
from sqlalchemy import update as sql_update
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection

from ..core.context import Ctx
from ..database import DatabaseManager
from ..domain.exceptions import (
    ConstraintViolation,
    EntityNotFound,
    EntityReferenced,
    StoreUnavailable,
    Timeout,
    ValidationException,
)
from ..metrics import track_db_operation
from .descriptor import EntityDescriptor
from .filters import (
    LIST_LIMIT_DEFAULT,
    LIST_LIMIT_MAX,
    FilterExpression,
    ListOptions,
    build_list_query,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Patterns locating the offending column in driver constraint messages
_CONSTRAINT_FIELD_PATTERNS = (
    re.compile(r"Key \((?P<field>[^)]+)\)="),
    re.compile(r"UNIQUE constraint failed: \w+\.(?P<field>\w+)"),
    re.compile(r"NOT NULL constraint failed: \w+\.(?P<field>\w+)"),
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they are stored in UTC."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class ModelManager:
    """
    Explicit handles to the shared resources used by the repositories.

    Attributes:
        db: Primary store manager
        cache: Cache synchronizer, or None to run without a cache
        default_timeout: Deadline in seconds applied when a call gives none
        list_limit_default: Rows returned by list when no limit is given
        list_limit_max: Hard ceiling on list limits
    """

    def __init__(
        self,
        db: DatabaseManager,
        cache: Optional[Any] = None,
        default_timeout: Optional[float] = None,
        list_limit_default: int = LIST_LIMIT_DEFAULT,
        list_limit_max: int = LIST_LIMIT_MAX,
    ) -> None:
        self.db = db
        self.cache = cache
        self.default_timeout = default_timeout
        self.list_limit_default = list_limit_default
        self.list_limit_max = list_limit_max

    async def startup(self, create_tables: bool = False) -> None:
        """Connect the store, then the cache (which rebuilds every snapshot)."""
        await self.db.connect()
        if create_tables:
            await self.db.init_db()
        if self.cache is not None:
            await self.cache.start()

    async def shutdown(self) -> None:
        if self.cache is not None:
            await self.cache.stop()
        await self.db.disconnect()


def constraint_field(descriptor: EntityDescriptor, error: IntegrityError) -> Optional[str]:
    """Best-effort name of the column an integrity error is about."""
    origin = error.orig
    sources = [origin, getattr(origin, "__cause__", None)]
    for source in sources:
        if source is None:
            continue
        column = getattr(source, "column_name", None)
        if column:
            return column
        for text in (str(source), getattr(source, "detail", None) or ""):
            for pattern in _CONSTRAINT_FIELD_PATTERNS:
                match = pattern.search(text)
                if match:
                    return match.group("field").split(",")[0].strip()
        constraint = getattr(source, "constraint_name", None)
        if constraint:
            for name in sorted(descriptor.field_names, key=len, reverse=True):
                if f"_{name}_" in f"_{constraint}_":
                    return name
    return None


@contextmanager
def translate_store_errors(descriptor: EntityDescriptor):
    """Map SQLAlchemy and driver failures onto the domain exceptions."""
    try:
        yield
    except IntegrityError as e:
        field = constraint_field(descriptor, e)
        raise ConstraintViolation(descriptor.name, field, reason=str(e.orig)) from e
    except (OperationalError, InterfaceError) as e:
        raise StoreUnavailable(str(e.orig)) from e
    except DataError as e:
        # values the schemas accepted but the column type cannot hold
        errors = [{"type": "store_rejected", "msg": str(e.orig)}]
        raise ValidationException(descriptor.name, errors) from e
    except DBAPIError as e:
        if e.connection_invalidated:
            raise StoreUnavailable(str(e.orig)) from e
        raise
    except asyncio.TimeoutError:
        raise
    except OSError as e:
        raise StoreUnavailable(str(e)) from e


class BaseBmc:
    """
    Generic repository parameterized by an entity descriptor.

    Subclasses set the class attributes and may override the hooks
    ``prepare_create``, ``prepare_update`` and ``check_transition``.
    """

    descriptor: ClassVar[EntityDescriptor]
    entity_model: ClassVar[Type[BaseModel]]
    result_model: ClassVar[Type[BaseModel]]
    create_schema: ClassVar[Type[BaseModel]]
    update_schema: ClassVar[Type[BaseModel]]

    # region: entity hooks

    @classmethod
    def _validate(cls, schema: Type[BaseModel], data: Any) -> BaseModel:
        if isinstance(data, schema):
            return data
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        try:
            return schema.model_validate(data)
        except PydanticValidationError as e:
            errors = [
                {key: value for key, value in error.items() if key != "input"}
                for error in e.errors(include_url=False, include_context=False)
            ]
            raise ValidationException(cls.descriptor.name, errors) from None

    @classmethod
    def validate_create(cls, data: Any) -> BaseModel:
        return cls._validate(cls.create_schema, data)

    @classmethod
    def validate_update(cls, data: Any) -> BaseModel:
        return cls._validate(cls.update_schema, data)

    @classmethod
    def prepare_create(cls, payload: BaseModel) -> Dict[str, Any]:
        """Column values to insert for a validated create payload."""
        return payload.model_dump()

    @classmethod
    def prepare_update(cls, payload: BaseModel) -> Dict[str, Any]:
        """Column values to change; fields the caller did not set are left alone."""
        return payload.model_dump(exclude_unset=True, exclude_none=True)

    @classmethod
    def check_transition(cls, current: BaseModel, changes: Dict[str, Any]) -> None:
        """Raise InvalidTransition when ``changes`` may not be applied to ``current``."""

    # endregion: entity hooks

    # region: execution

    @classmethod
    async def _unit_of_work(
        cls, mm: ModelManager, work: Callable[[AsyncConnection], Awaitable[T]]
    ) -> T:
        with translate_store_errors(cls.descriptor):
            async with mm.db.transaction() as conn:
                return await work(conn)

    @classmethod
    async def _run(
        cls,
        ctx: Ctx,
        mm: ModelManager,
        operation: str,
        work: Callable[[AsyncConnection], Awaitable[T]],
        timeout: Optional[float],
        **log_fields: Any,
    ) -> T:
        entity = cls.descriptor.name
        deadline = timeout if timeout is not None else mm.default_timeout
        started = time.perf_counter()
        outcome = "success"
        try:
            unit = cls._unit_of_work(mm, work)
            if deadline is None:
                return await unit
            return await asyncio.wait_for(unit, timeout=deadline)
        except asyncio.TimeoutError:
            outcome = "Timeout"
            logger.warning(
                "Operation timed out",
                entity=entity,
                operation=operation,
                timeout=deadline,
                user_id=ctx.user_id,
                **log_fields,
            )
            raise Timeout(entity, operation, deadline) from None
        except Exception as e:
            outcome = type(e).__name__
            raise
        finally:
            duration = time.perf_counter() - started
            track_db_operation(entity, operation, outcome, duration)
            logger.debug(
                "Repository operation",
                entity=entity,
                operation=operation,
                outcome=outcome,
                duration_ms=round(duration * 1000, 2),
                user_id=ctx.user_id,
                **log_fields,
            )

    @classmethod
    async def _after_mutation(cls, mm: ModelManager) -> None:
        if cls.descriptor.cached and mm.cache is not None:
            await mm.cache.schedule_refresh(cls.descriptor.name)

    @classmethod
    def _to_entity(cls, row) -> BaseModel:
        return cls.entity_model.model_validate(dict(row))

    # endregion: execution

    # region: operations

    @classmethod
    async def create(
        cls, ctx: Ctx, mm: ModelManager, data: Any, timeout: Optional[float] = None
    ) -> int:
        """
        Validate and insert a new row.

        Returns:
            The id assigned by the store

        Raises:
            ValidationException: If the payload is invalid
            ConstraintViolation: If a unique or reference constraint rejects the row
        """
        descriptor = cls.descriptor
        payload = cls.validate_create(data)
        values = cls.prepare_create(payload)

        async def work(conn: AsyncConnection) -> int:
            if descriptor.timestamps:
                now = utcnow()
                values.setdefault("created_at", now)
                values.setdefault("updated_at", now)
            result = await conn.execute(insert(descriptor.table).values(**values))
            return result.inserted_primary_key[0]

        new_id = await cls._run(ctx, mm, "create", work, timeout)
        logger.info("Entity created", entity=descriptor.name, id=new_id, user_id=ctx.user_id)
        await cls._after_mutation(mm)
        return new_id

    @classmethod
    async def get(
        cls, ctx: Ctx, mm: ModelManager, id: int, timeout: Optional[float] = None
    ) -> BaseModel:
        """
        Fetch exactly one row by id.

        Raises:
            EntityNotFound: If no row has this id
        """
        descriptor = cls.descriptor

        async def work(conn: AsyncConnection) -> BaseModel:
            query = select(*descriptor.columns()).where(descriptor.column("id") == id)
            row = (await conn.execute(query)).mappings().first()
            if row is None:
                raise EntityNotFound(descriptor.name, id)
            return cls._to_entity(row)

        return await cls._run(ctx, mm, "get", work, timeout, id=id)

    @classmethod
    async def list(
        cls,
        ctx: Ctx,
        mm: ModelManager,
        filters: Optional[FilterExpression] = None,
        list_options: Optional[ListOptions] = None,
        timeout: Optional[float] = None,
    ) -> List[BaseModel]:
        """
        List rows matching an optional filter, ordered and bounded.

        The query is compiled before anything touches the store, so bad
        fields or operators fail without executing SQL.

        Raises:
            InvalidFilterField: If a filter or order field is not allowed
            InvalidFilterOperator: If a filter operator is not allowed
        """
        query = build_list_query(
            cls.descriptor,
            filters,
            list_options,
            limit_default=mm.list_limit_default,
            limit_max=mm.list_limit_max,
        )

        async def work(conn: AsyncConnection) -> List[BaseModel]:
            rows = (await conn.execute(query)).mappings().all()
            return [cls._to_entity(row) for row in rows]

        return await cls._run(ctx, mm, "list", work, timeout)

    @classmethod
    async def first(
        cls,
        ctx: Ctx,
        mm: ModelManager,
        filters: Optional[FilterExpression] = None,
        list_options: Optional[ListOptions] = None,
        timeout: Optional[float] = None,
    ) -> Optional[BaseModel]:
        """First row matching the filter in list order, or None."""
        options = list_options or ListOptions()
        options = ListOptions(limit=1, offset=options.offset, order_bys=options.order_bys)
        rows = await cls.list(ctx, mm, filters, options, timeout=timeout)
        return rows[0] if rows else None

    @classmethod
    async def update(
        cls,
        ctx: Ctx,
        mm: ModelManager,
        id: int,
        data: Any,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Apply a partial update.

        The row is locked for the duration of the transaction so the
        transition check and the write see the same committed state.

        Raises:
            EntityNotFound: If no row has this id
            InvalidTransition: If the entity's rules forbid the change
            ConstraintViolation: If a constraint rejects the new values
        """
        descriptor = cls.descriptor
        payload = cls.validate_update(data)
        changes = cls.prepare_update(payload)

        async def work(conn: AsyncConnection) -> bool:
            query = (
                select(*descriptor.columns())
                .where(descriptor.column("id") == id)
                .with_for_update()
            )
            row = (await conn.execute(query)).mappings().first()
            if row is None:
                raise EntityNotFound(descriptor.name, id)

            cls.check_transition(cls._to_entity(row), changes)
            if not changes:
                return False

            values = dict(changes)
            if descriptor.timestamps:
                values["updated_at"] = max(
                    utcnow(), as_utc(row["updated_at"]), as_utc(row["created_at"])
                )
            await conn.execute(
                sql_update(descriptor.table)
                .where(descriptor.column("id") == id)
                .values(**values)
            )
            return True

        changed = await cls._run(ctx, mm, "update", work, timeout, id=id)
        if changed:
            logger.info(
                "Entity updated",
                entity=descriptor.name,
                id=id,
                fields=sorted(changes),
                user_id=ctx.user_id,
            )
            await cls._after_mutation(mm)

    @classmethod
    async def delete(
        cls, ctx: Ctx, mm: ModelManager, id: int, timeout: Optional[float] = None
    ) -> None:
        """
        Delete a row.

        Rows still referenced by other entities are not deleted.

        Raises:
            EntityNotFound: If no row has this id
            EntityReferenced: If other rows reference this one
        """
        descriptor = cls.descriptor

        async def work(conn: AsyncConnection) -> None:
            id_column = descriptor.column("id")
            found = await conn.execute(select(id_column).where(id_column == id).with_for_update())
            if found.first() is None:
                raise EntityNotFound(descriptor.name, id)

            referencing = []
            for table, column in descriptor.referenced_by:
                hit = await conn.execute(
                    select(table.c[column]).where(table.c[column] == id).limit(1)
                )
                if hit.first() is not None:
                    referencing.append(table.name)
            if referencing:
                raise EntityReferenced(descriptor.name, id, referencing)

            await conn.execute(sql_delete(descriptor.table).where(id_column == id))

        await cls._run(ctx, mm, "delete", work, timeout, id=id)
        logger.info("Entity deleted", entity=descriptor.name, id=id, user_id=ctx.user_id)
        await cls._after_mutation(mm)

    # endregion: operations
