# Purpose: typed access to the history tables
# every monitor, the enrichment pool and the UI go through one ItemStore
# update() and delete() on the same item id are serialized by a per-item lock

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy import delete as sql_delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import select

from cliptrail.core.errors import NotFoundError, StorageError
from cliptrail.db.models import (
    TABLES,
    Item,
    ItemKind,
    from_row,
    get_field,
    mutable_fields,
    to_row,
)
from cliptrail.db import session as db_session
from cliptrail.db.session import get_session, init_db

log = logging.getLogger(__name__)


class ItemLocks:
    """
    One lock per item id, created on demand and dropped when nobody holds it
    Two different ids never share a lock
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[uuid.UUID, list] = {}  # id -> [lock, holders]

    @contextmanager
    def hold(self, item_id: uuid.UUID) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(item_id, [threading.Lock(), 0])
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(item_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class ItemStore:
    """
    Durable, queryable collection of history items
    clock is injectable so tests can move time
    """

    def __init__(self, engine=None, clock: Callable[[], datetime] = datetime.now):
        self.engine = engine or db_session.engine
        self.clock = clock
        self.locks = ItemLocks()

    def open(self) -> "ItemStore":
        """Create tables; StorageError here is fatal for the caller"""
        init_db(self.engine)
        return self

    def _session(self):
        return get_session(self.engine)

    # ===== WRITE =====

    def insert(self, item: Item) -> Item:
        """Assign id + timestamp when missing and persist the item"""
        if item.id is None:
            item.id = uuid.uuid4()
        if item.timestamp is None:
            item.timestamp = self.clock()

        with self.locks.hold(item.id):
            try:
                with self._session() as session:
                    session.add(to_row(item))
                    session.commit()
            except IntegrityError as e:
                raise StorageError(f"Duplicate {item.kind.value} item {item.id}: {e.orig}") from e
            except SQLAlchemyError as e:
                raise StorageError(f"Could not save {item.kind.value} item: {e}") from e

        return item

    def update(self, item: Item, *names: str) -> None:
        """
        Persist mutated fields of an already inserted item
        names: fields to write, all mutable fields of the kind when empty
        raises NotFoundError when the item was deleted in the meantime
        """
        allowed = mutable_fields(item.kind)
        names = names or allowed
        for name in names:
            if name not in allowed:
                raise ValueError(f"{name!r} is not a mutable field of {item.kind.value} items")

        if item.id is None:
            raise NotFoundError(None)

        table = TABLES[item.kind]
        with self.locks.hold(item.id):
            try:
                with self._session() as session:
                    row = session.get(table, item.id)
                    if row is None:
                        raise NotFoundError(item.id)
                    for name in names:
                        value = get_field(item, name)
                        setattr(row, name, list(value) if name == "tags" else value)
                    session.add(row)
                    session.commit()
            except StaleDataError as e:
                # row removed by clear_all between our read and our write
                raise NotFoundError(item.id) from e
            except SQLAlchemyError as e:
                raise StorageError(f"Could not update item {item.id}: {e}") from e

    def delete(self, item: Item) -> bool:
        """Delete one item, returns False when it was already gone"""
        table = TABLES[item.kind]
        with self.locks.hold(item.id):
            try:
                with self._session() as session:
                    row = session.get(table, item.id)
                    if row is None:
                        log.info("[SKIP] Delete of %s item %s: already gone", item.kind.value, item.id)
                        return False
                    session.delete(row)
                    session.commit()
            except SQLAlchemyError as e:
                raise StorageError(f"Could not delete item {item.id}: {e}") from e
        return True

    def clear_all(self) -> int:
        """Delete every item of every kind, one transaction per kind"""
        removed = 0
        for kind, table in TABLES.items():
            try:
                with self._session() as session:
                    result = session.execute(sql_delete(table))
                    session.commit()
                    removed += result.rowcount or 0
            except SQLAlchemyError as e:
                log.error("[ERROR] Failed to clear %s items: %s", kind.value, e)
                raise StorageError(f"Could not clear {kind.value} items: {e}") from e
        log.info("[SYSTEM] Cleared %d items", removed)
        return removed

    # ===== READ =====

    def get(self, item_id: uuid.UUID, kind: Optional[ItemKind] = None) -> Optional[Item]:
        kinds = [kind] if kind is not None else list(TABLES)
        with self._session() as session:
            for k in kinds:
                row = session.get(TABLES[k], item_id)
                if row is not None:
                    return from_row(k, row)
        return None

    def most_recent(self, kind: ItemKind, limit: int = 1) -> List[Item]:
        """Newest first"""
        table = TABLES[kind]
        statement = select(table).order_by(table.timestamp.desc()).limit(limit)
        with self._session() as session:
            return [from_row(kind, row) for row in session.exec(statement).all()]

    def find_by_field(
            self,
            kind: ItemKind,
            since: Optional[datetime] = None,
            until: Optional[datetime] = None,
            **equals,
    ) -> List[Item]:
        """
        Equality filter on columns plus an optional timestamp window, newest first

        Eg: find_by_field(ItemKind.SCREENSHOT, file_name="Screenshot 1.png")
            find_by_field(ItemKind.IMAGE, since=now - timedelta(seconds=5))
        """
        table = TABLES[kind]
        statement = select(table)

        for name, value in equals.items():
            column = getattr(table, name, None)
            if column is None:
                raise ValueError(f"{kind.value} items have no field {name!r}")
            statement = statement.where(column == value)

        if since is not None:
            statement = statement.where(table.timestamp > since)
        if until is not None:
            statement = statement.where(table.timestamp <= until)

        statement = statement.order_by(table.timestamp.desc())
        with self._session() as session:
            return [from_row(kind, row) for row in session.exec(statement).all()]

    def all_items(self, kinds: Optional[List[ItemKind]] = None) -> List[Item]:
        """Items of every kind merged and sorted newest first"""
        items: List[Item] = []
        with self._session() as session:
            for kind in kinds or list(TABLES):
                table = TABLES[kind]
                rows = session.exec(select(table)).all()
                items.extend(from_row(kind, row) for row in rows)
        items.sort(key=lambda item: item.timestamp, reverse=True)
        return items

    def count(self, kind: Optional[ItemKind] = None) -> int:
        kinds = [kind] if kind is not None else list(TABLES)
        total = 0
        with self._session() as session:
            for k in kinds:
                total += session.exec(select(func.count()).select_from(TABLES[k])).one()
        return total
