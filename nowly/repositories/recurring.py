"""Persistence for recurring task templates."""

import logging
from datetime import date, datetime
from typing import Any, Dict, List

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import NotFoundError
from ..models import RecurringTaskItem
from .tasks import translate_db_error

logger = logging.getLogger(__name__)


class RecurringTaskRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, item: RecurringTaskItem) -> RecurringTaskItem:
        try:
            self.db.add(item)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise translate_db_error(exc, "create recurring task item") from exc
        self.db.refresh(item)
        return item

    def get(self, owner_id: str, item_id: str) -> RecurringTaskItem:
        item = (
            self.db.query(RecurringTaskItem)
            .filter(RecurringTaskItem.id == item_id, RecurringTaskItem.user_id == owner_id)
            .first()
        )
        if item is None:
            raise NotFoundError("Recurring task item not found")
        return item

    def list_for_user(self, owner_id: str, active_only: bool = False) -> List[RecurringTaskItem]:
        query = self.db.query(RecurringTaskItem).filter(RecurringTaskItem.user_id == owner_id)
        if active_only:
            query = query.filter(RecurringTaskItem.is_active.is_(True))
        return query.order_by(RecurringTaskItem.created_at.asc()).all()

    def update(self, item: RecurringTaskItem, changes: Dict[str, Any]) -> RecurringTaskItem:
        for field, value in changes.items():
            setattr(item, field, value)
        item.updated_at = datetime.utcnow()
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise translate_db_error(exc, "update recurring task item") from exc
        self.db.refresh(item)
        return item

    def delete(self, item: RecurringTaskItem) -> None:
        try:
            self.db.delete(item)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise translate_db_error(exc, "delete recurring task item") from exc

    def find_active_due_for_top_up(self, owner_id: str, today: date) -> List[RecurringTaskItem]:
        """Active templates whose high-water mark is unset or already behind ``today``."""
        return (
            self.db.query(RecurringTaskItem)
            .filter(
                RecurringTaskItem.user_id == owner_id,
                RecurringTaskItem.is_active.is_(True),
                or_(
                    RecurringTaskItem.last_generated_date.is_(None),
                    RecurringTaskItem.last_generated_date < today,
                ),
                or_(
                    RecurringTaskItem.end_date.is_(None),
                    RecurringTaskItem.end_date >= today,
                ),
            )
            .order_by(RecurringTaskItem.created_at.asc())
            .all()
        )

    def update_last_generated_date(self, item_id: str, new_date: date) -> bool:
        """
        Advance the high-water mark. Never moves it backwards; returns False
        when the stored mark was already at or past ``new_date``.
        """
        try:
            updated = (
                self.db.query(RecurringTaskItem)
                .filter(
                    RecurringTaskItem.id == item_id,
                    or_(
                        RecurringTaskItem.last_generated_date.is_(None),
                        RecurringTaskItem.last_generated_date < new_date,
                    ),
                )
                .update(
                    {
                        RecurringTaskItem.last_generated_date: new_date,
                        RecurringTaskItem.updated_at: datetime.utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise translate_db_error(exc, "advance generation mark") from exc
        if updated:
            logger.debug("Recurring item %s generated through %s", item_id, new_date)
        return bool(updated)
