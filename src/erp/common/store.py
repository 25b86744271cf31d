"""Row-level store contract and its Tortoise ORM implementation.

Repositories never touch ORM models directly: they talk to a `RemoteStore`
in terms of table names and flat rows (dicts keyed by snake_case column
names), plus a handful of stored procedures. `TortoiseStore` implements that
contract on top of the Tortoise models that describe the external schema.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from tortoise.exceptions import BaseORMException, DoesNotExist, IntegrityError
from tortoise.models import Model
from tortoise.transactions import in_transaction

from .errors import ConflictError, NotFoundError, StoreError

logger = logging.getLogger(__name__)

Row = dict[str, Any]


@dataclass(frozen=True)
class Procedure:
    """A stored procedure callable through `RemoteStore.rpc`.

    `shapes` lists every accepted parameter set; a call whose parameter names
    match none of them is rejected like an unknown function signature.
    """

    name: str
    func: Callable[..., Awaitable[Any]]
    shapes: tuple[frozenset[str], ...]


class RemoteStore:
    """Table-level CRUD plus stored procedures. Owns durability and uniqueness."""

    async def select(
        self, table: str, *, order_by: Sequence[str] = (), limit: Optional[int] = None, **filters
    ) -> list[Row]:
        raise NotImplementedError

    async def insert(self, table: str, values: Row) -> Row:
        raise NotImplementedError

    async def update(self, table: str, values: Row, **filters) -> list[Row]:
        raise NotImplementedError

    async def delete(self, table: str, **filters) -> int:
        raise NotImplementedError

    async def count(self, table: str, **filters) -> int:
        raise NotImplementedError

    async def upsert(self, table: str, values: Row, *, on_conflict: Sequence[str]) -> Row:
        raise NotImplementedError

    async def rpc(self, name: str, params: Row) -> Any:
        raise NotImplementedError


class TortoiseStore(RemoteStore):
    def __init__(self, tables: Iterable[type[Model]], procedures: Iterable[Procedure] = ()):
        self._tables = {model._meta.db_table: model for model in tables}
        self._procedures = {procedure.name: procedure for procedure in procedures}

    # --- helpers ---

    def _model(self, table: str) -> type[Model]:
        model = self._tables.get(table)
        if model is None:
            raise StoreError(f'relation "{table}" does not exist')
        return model

    @staticmethod
    def _columns(model: type[Model]) -> set[str]:
        return set(model._meta.fields_db_projection)

    def _check_columns(self, model: type[Model], table: str, names: Iterable[str]) -> None:
        columns = self._columns(model)
        for name in names:
            column = name.lstrip("-").split("__", 1)[0]
            if column not in columns:
                raise StoreError(f'column "{column}" of relation "{table}" does not exist')

    def _to_row(self, obj: Model) -> Row:
        return {name: getattr(obj, name) for name in obj._meta.fields_db_projection}

    @contextmanager
    def _translated(self, action: str, table: str):
        try:
            yield
        except IntegrityError as e:
            raise ConflictError(f"{action} on {table} violates a unique constraint: {e}") from e
        except DoesNotExist as e:
            raise NotFoundError(f"{action} on {table}: row not found") from e
        except BaseORMException as e:
            logger.error(f"Store failure during {action} on {table}: {e}", exc_info=True)
            raise StoreError(f"{action} on {table} failed: {e}") from e

    # --- contract ---

    async def select(
        self, table: str, *, order_by: Sequence[str] = (), limit: Optional[int] = None, **filters
    ) -> list[Row]:
        model = self._model(table)
        self._check_columns(model, table, [*filters, *order_by])
        with self._translated("select", table):
            query = model.filter(**filters)
            if order_by:
                query = query.order_by(*order_by)
            if limit is not None:
                query = query.limit(limit)
            return [self._to_row(obj) for obj in await query]

    async def insert(self, table: str, values: Row) -> Row:
        model = self._model(table)
        self._check_columns(model, table, values)
        with self._translated("insert", table):
            obj = await model.create(**values)
            return self._to_row(obj)

    async def update(self, table: str, values: Row, **filters) -> list[Row]:
        if not filters:
            raise StoreError(f"update on {table} requires a filter")
        model = self._model(table)
        self._check_columns(model, table, [*values, *filters])
        update_fields = list(values)
        if "updated_at" in self._columns(model) and "updated_at" not in update_fields:
            update_fields.append("updated_at")
        with self._translated("update", table):
            async with in_transaction() as conn:
                objs = await model.filter(**filters).using_db(conn)
                for obj in objs:
                    obj.update_from_dict(values)
                    await obj.save(using_db=conn, update_fields=update_fields)
            return [self._to_row(obj) for obj in objs]

    async def delete(self, table: str, **filters) -> int:
        if not filters:
            raise StoreError(f"delete on {table} requires a filter")
        model = self._model(table)
        self._check_columns(model, table, filters)
        with self._translated("delete", table):
            return await model.filter(**filters).delete()

    async def count(self, table: str, **filters) -> int:
        model = self._model(table)
        self._check_columns(model, table, filters)
        with self._translated("count", table):
            return await model.filter(**filters).count()

    async def upsert(self, table: str, values: Row, *, on_conflict: Sequence[str]) -> Row:
        """Insert `values`, or update the row that already holds the conflict key.

        The conflict columns must be covered by a unique constraint on the
        table; the lookup and the write run in one transaction.
        """
        model = self._model(table)
        self._check_columns(model, table, values)
        missing = [column for column in on_conflict if values.get(column) is None]
        if missing:
            raise StoreError(f"upsert on {table} needs non-null conflict columns: {missing}")
        keys = {column: values[column] for column in on_conflict}
        defaults = {column: value for column, value in values.items() if column not in keys}
        with self._translated("upsert", table):
            async with in_transaction() as conn:
                obj, created = await model.update_or_create(defaults=defaults, using_db=conn, **keys)
            logger.debug(f"upsert on {table} {'inserted' if created else 'updated'} {obj.pk}")
            return self._to_row(obj)

    async def rpc(self, name: str, params: Row) -> Any:
        procedure = self._procedures.get(name)
        if procedure is None or frozenset(params) not in procedure.shapes:
            signature = ", ".join(sorted(params))
            raise StoreError(f"Could not find the function {name}({signature}) in the schema cache")
        with self._translated("rpc", name):
            return await procedure.func(**params)
