import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app.db.base import Base
from app.db.models import AvailabilitySlotRow, BookingRow
from app.domain import AvailabilitySlot, Booking, SlotStatus
from app.domain.entity import utcnow
from app.storage.base import EntityT, Predicate, ResultT, RevisionConflict, StorageAdapter, plain_value

logger = logging.getLogger(__name__)

ROW_MODELS: dict[str, type[Base]] = {
    AvailabilitySlot.kind: AvailabilitySlotRow,
    Booking.kind: BookingRow,
}


class SqlStorageAdapter(StorageAdapter):
    """Relational realization backed by SQLAlchemy.

    Each table has an integer ``version`` column that plays the role of the
    document revision: ``rev`` is its string form and every replace is an
    ``UPDATE ... WHERE id = :id AND version = :rev``.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def transact(self, fn: Callable[[Session], ResultT]) -> ResultT:
        session = self._session_factory()
        try:
            result = fn(session)
            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _row_model(model: type[EntityT]) -> Any:
        try:
            return ROW_MODELS[model.kind]
        except KeyError:
            raise ValueError(f"No table for entity kind {model.kind!r}") from None

    @staticmethod
    def _to_entity(model: type[EntityT], row: Any) -> EntityT:
        values = {column.key: getattr(row, column.key) for column in row.__table__.columns}
        values["rev"] = str(values.pop("version"))
        return model.model_validate(values)

    def get_by_id(self, model: type[EntityT], entity_id: str) -> EntityT | None:
        row_model = self._row_model(model)

        def load(session: Session) -> EntityT | None:
            row = session.get(row_model, entity_id)
            return None if row is None else self._to_entity(model, row)

        return self.transact(load)

    def query(self, model: type[EntityT], predicate: Predicate | None = None) -> list[EntityT]:
        predicate = predicate or Predicate()
        row_model = self._row_model(model)
        statement = select(row_model)
        for key, value in predicate.equals.items():
            statement = statement.where(getattr(row_model, key) == plain_value(value))
        for key, values in predicate.one_of.items():
            statement = statement.where(getattr(row_model, key).in_([plain_value(v) for v in values]))
        for key, values in predicate.not_in.items():
            statement = statement.where(getattr(row_model, key).not_in([plain_value(v) for v in values]))
        statement = statement.order_by(row_model.created_at, row_model.id)

        def load(session: Session) -> list[EntityT]:
            return [self._to_entity(model, row) for row in session.scalars(statement).all()]

        return self.transact(load)

    def upsert(self, entity: EntityT) -> EntityT:
        row_model = self._row_model(type(entity))
        values = entity.model_dump(exclude={"rev"})

        if entity.rev is None:

            def insert(session: Session) -> None:
                session.add(row_model(**values, version=1))
                session.flush()

            try:
                self.transact(insert)
            except IntegrityError as exc:
                raise RevisionConflict(entity.kind, entity.id, None) from exc
            return entity.model_copy(update={"rev": "1"})

        expected_version = int(entity.rev)
        values.pop("id")

        def replace(session: Session) -> int:
            result = session.execute(
                update(row_model)
                .where(row_model.id == entity.id, row_model.version == expected_version)
                .values(**values, version=expected_version + 1)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        if self.transact(replace) != 1:
            logger.debug(
                "sql_version_conflict kind=%s id=%s expected_version=%s",
                entity.kind,
                entity.id,
                expected_version,
            )
            raise RevisionConflict(entity.kind, entity.id, entity.rev)
        return entity.model_copy(update={"rev": str(expected_version + 1)})

    def try_adjust_booked_count(self, slot_id: str, delta: int) -> AvailabilitySlot | None:
        """Apply ``delta`` to a slot's booked_count in one conditional statement.

        An increment only matches an active slot with room left, a decrement is
        floored at zero. Returns the updated slot, or ``None`` when no row matched.
        """
        row = AvailabilitySlotRow
        statement = update(row).where(row.id == slot_id)
        if delta > 0:
            statement = statement.where(
                row.booked_count + delta <= row.capacity,
                row.status == SlotStatus.ACTIVE.value,
            )
            new_count = row.booked_count + delta
        else:
            new_count = case((row.booked_count + delta < 0, 0), else_=row.booked_count + delta)

        def adjust(session: Session) -> AvailabilitySlot | None:
            result = session.execute(
                statement.values(booked_count=new_count, version=row.version + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            return self._to_entity(AvailabilitySlot, session.get(row, slot_id))

        return self.transact(adjust)
