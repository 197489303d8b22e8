"""
tenancy_sdk.tier0_core.query
──────────────────────────────
Operation verbs, their arguments, the mapping-based filter language and
verb execution against an AsyncSession.

Nothing in this module knows about tenants: it runs exactly the arguments
it is handed. Scoping happens one layer up, in tier3_platform.interception.

Filter language (``where``):

    {"name": "Mug"}                          equality (None → IS NULL)
    {"base_price": {"gte": 10, "lt": 50}}    operators, ANDed
    {"OR": [{...}, {...}]}                   AND / OR take a list, NOT a mapping
    {"order": {"is": {"store_id": 7}}}       many-to-one relationship filter
    {"items": {"some": {"quantity": 2}}}     one-to-many: some / none
"""
from __future__ import annotations

import enum
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import and_, delete, false, func, not_, or_, select, true, update
from sqlalchemy.exc import MultipleResultsFound
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import RelationshipDirection
from sqlalchemy.sql.elements import ColumnElement

from tenancy_sdk.tier0_core.errors import RecordNotFoundError, ValidationError


Where = Mapping[str, Any]
Payload = Mapping[str, Any]


class Operation(str, enum.Enum):
    FIND_UNIQUE = "find_unique"
    FIND_FIRST = "find_first"
    FIND_MANY = "find_many"
    COUNT = "count"
    CREATE = "create"
    CREATE_MANY = "create_many"
    UPDATE = "update"
    UPDATE_MANY = "update_many"
    DELETE = "delete"
    DELETE_MANY = "delete_many"

    @property
    def is_create(self) -> bool:
        return self in (Operation.CREATE, Operation.CREATE_MANY)

    @property
    def is_update(self) -> bool:
        return self in (Operation.UPDATE, Operation.UPDATE_MANY)

    @property
    def is_batch(self) -> bool:
        return self in (Operation.CREATE_MANY, Operation.UPDATE_MANY, Operation.DELETE_MANY)


@dataclass(frozen=True)
class QueryArgs:
    """Arguments of one verb invocation. Unused fields stay None."""
    where: Where | None = None
    data: Payload | Sequence[Payload] | None = None
    order_by: Mapping[str, str] | Sequence[Mapping[str, str]] | None = None
    limit: int | None = None
    offset: int | None = None

    def rows(self) -> list[Payload]:
        """The write payload as a list of rows."""
        if self.data is None:
            return []
        if isinstance(self.data, Mapping):
            return [self.data]
        return list(self.data)


# ── Filter compilation ────────────────────────────────────────────────────────

_OPERATORS: dict[str, Callable[[Any, Any], ColumnElement[bool]]] = {
    "equals": lambda col, v: col.is_(None) if v is None else col == v,
    "not": lambda col, v: col.is_not(None) if v is None else col != v,
    "in": lambda col, v: col.in_(list(v)),
    "not_in": lambda col, v: col.not_in(list(v)),
    "lt": lambda col, v: col < v,
    "lte": lambda col, v: col <= v,
    "gt": lambda col, v: col > v,
    "gte": lambda col, v: col >= v,
    "contains": lambda col, v: col.contains(v, autoescape=True),
    "startswith": lambda col, v: col.startswith(v, autoescape=True),
    "endswith": lambda col, v: col.endswith(v, autoescape=True),
}


def compile_where(model: type, where: Where | None) -> ColumnElement[bool]:
    """Translate a ``where`` mapping into a SQLAlchemy boolean clause."""
    if not where:
        return true()
    mapper = model.__mapper__
    clauses: list[ColumnElement[bool]] = []
    for key, value in where.items():
        if key == "AND":
            clauses.append(and_(true(), *(compile_where(model, w) for w in _as_list(key, value))))
        elif key == "OR":
            clauses.append(or_(false(), *(compile_where(model, w) for w in _as_list(key, value))))
        elif key == "NOT":
            clauses.append(not_(and_(true(), *(compile_where(model, w) for w in _as_list(key, value)))))
        elif key in mapper.relationships:
            clauses.append(_relationship_clause(model, key, value))
        elif key in mapper.columns:
            clauses.append(_column_clause(getattr(model, key), key, value))
        else:
            raise ValidationError(
                user_message="Unknown filter field.",
                fields={key: f"not a field of {model.__tablename__}"},
            )
    return and_(true(), *clauses)


def _as_list(key: str, value: Any) -> list[Where]:
    if isinstance(value, Mapping):
        return [value]
    if isinstance(value, Sequence) and not isinstance(value, str):
        return list(value)
    raise ValidationError(fields={key: "expected a mapping or a list of mappings"})


def _column_clause(col: Any, key: str, value: Any) -> ColumnElement[bool]:
    if not isinstance(value, Mapping):
        return _OPERATORS["equals"](col, value)
    parts = []
    for op, operand in value.items():
        fn = _OPERATORS.get(op)
        if fn is None:
            raise ValidationError(
                user_message="Unknown filter operator.",
                fields={key: f"unsupported operator {op!r}"},
            )
        parts.append(fn(col, operand))
    return and_(true(), *parts)


def _relationship_clause(model: type, key: str, value: Any) -> ColumnElement[bool]:
    rel = model.__mapper__.relationships[key]
    attr = getattr(model, key)
    target = rel.mapper.class_
    if not isinstance(value, Mapping) or len(value) != 1:
        raise ValidationError(fields={key: "relationship filters take exactly one of is/some/none"})
    (op, sub), = value.items()
    if rel.direction is RelationshipDirection.MANYTOONE:
        if op == "is":
            return attr.has(compile_where(target, sub))
    elif op == "some":
        return attr.any(compile_where(target, sub))
    elif op == "none":
        return not_(attr.any(compile_where(target, sub)))
    raise ValidationError(fields={key: f"unsupported relationship filter {op!r}"})


def compile_order_by(model: type, order_by: Any) -> list[Any]:
    if not order_by:
        return []
    specs = [order_by] if isinstance(order_by, Mapping) else list(order_by)
    clauses = []
    for spec in specs:
        for key, direction in spec.items():
            if key not in model.__mapper__.columns:
                raise ValidationError(fields={key: f"not a field of {model.__tablename__}"})
            col = getattr(model, key)
            if direction == "asc":
                clauses.append(col.asc())
            elif direction == "desc":
                clauses.append(col.desc())
            else:
                raise ValidationError(fields={key: "order must be 'asc' or 'desc'"})
    return clauses


def _check_payload(model: type, row: Payload) -> None:
    unknown = [k for k in row if k not in model.__mapper__.columns]
    if unknown:
        raise ValidationError(
            user_message="Unknown fields in payload.",
            fields={k: f"not a field of {model.__tablename__}" for k in unknown},
        )


# ── Execution ─────────────────────────────────────────────────────────────────

async def run_operation(
    session: AsyncSession, model: type, operation: Operation, args: QueryArgs
) -> Any:
    """
    Execute one verb and return its natural result:
    an instance or None for find_unique/find_first, a list for find_many,
    an int for count and the *_many writes, the affected instance for
    create/update/delete.
    """
    entity = model.__tablename__

    if operation is Operation.FIND_UNIQUE:
        return await _one_or_none(session, model, args)

    if operation is Operation.FIND_FIRST:
        stmt = _select(model, args).limit(1)
        return (await session.scalars(stmt)).first()

    if operation is Operation.FIND_MANY:
        stmt = _select(model, args)
        if args.limit is not None:
            stmt = stmt.limit(args.limit)
        if args.offset is not None:
            stmt = stmt.offset(args.offset)
        return list((await session.scalars(stmt)).all())

    if operation is Operation.COUNT:
        stmt = select(func.count()).select_from(model).where(compile_where(model, args.where))
        return int(await session.scalar(stmt) or 0)

    if operation is Operation.CREATE:
        row = args.rows()[0]
        _check_payload(model, row)
        obj = model(**row)
        session.add(obj)
        await session.flush()
        await session.refresh(obj)
        return obj

    if operation is Operation.CREATE_MANY:
        rows = args.rows()
        for row in rows:
            _check_payload(model, row)
        session.add_all([model(**row) for row in rows])
        await session.flush()
        return len(rows)

    if operation is Operation.UPDATE:
        obj = await _single(session, model, args)
        payload = args.rows()[0]
        _check_payload(model, payload)
        for key, value in payload.items():
            setattr(obj, key, value)
        await session.flush()
        await session.refresh(obj)
        return obj

    if operation is Operation.UPDATE_MANY:
        payload = args.rows()[0]
        _check_payload(model, payload)
        stmt = (
            update(model)
            .where(compile_where(model, args.where))
            .values(**payload)
            .execution_options(synchronize_session=False)
        )
        return (await session.execute(stmt)).rowcount

    if operation is Operation.DELETE:
        obj = await _single(session, model, args)
        await session.delete(obj)
        await session.flush()
        return obj

    if operation is Operation.DELETE_MANY:
        stmt = (
            delete(model)
            .where(compile_where(model, args.where))
            .execution_options(synchronize_session=False)
        )
        return (await session.execute(stmt)).rowcount

    raise ValueError(f"Unknown operation {operation!r} on {entity!r}")


def _select(model: type, args: QueryArgs) -> Any:
    stmt = select(model).where(compile_where(model, args.where))
    order = compile_order_by(model, args.order_by)
    if order:
        stmt = stmt.order_by(*order)
    return stmt


async def _one_or_none(session: AsyncSession, model: type, args: QueryArgs) -> Any:
    stmt = select(model).where(compile_where(model, args.where))
    try:
        return (await session.scalars(stmt)).one_or_none()
    except MultipleResultsFound:
        raise ValidationError(
            user_message="Filter must match at most one record.",
            fields={"where": f"matches several {model.__tablename__} records"},
        ) from None


async def _single(session: AsyncSession, model: type, args: QueryArgs) -> Any:
    obj = await _one_or_none(session, model, args)
    if obj is None:
        raise RecordNotFoundError(model.__tablename__)
    return obj


__all__ = [
    "Operation", "QueryArgs", "compile_where", "compile_order_by", "run_operation",
]
