# Submission record store: insert and read only, rows are never updated or deleted
from datetime import datetime
from typing import Optional

import pandas as pd
import structlog
from sqlalchemy import select, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import PersistenceFailure
from models import SurveySubmission

logger = structlog.get_logger()

SEARCHABLE_COLUMNS = (
    SurveySubmission.name,
    SurveySubmission.gender,
    SurveySubmission.nationality,
    SurveySubmission.email,
    SurveySubmission.phone,
    SurveySubmission.address,
    SurveySubmission.message,
)

EXPORT_COLUMNS = {
    "id": SurveySubmission.id,
    "name": SurveySubmission.name,
    "gender": SurveySubmission.gender,
    "nationality": SurveySubmission.nationality,
    "email": SurveySubmission.email,
    "phone": SurveySubmission.phone,
    "address": SurveySubmission.address,
    "message": SurveySubmission.message,
    "ipAddress": SurveySubmission.ip_address,
    "userAgent": SurveySubmission.user_agent,
    "createdAt": SurveySubmission.created_at,
}


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SubmissionStore:

    def __init__(self, db: Session):
        self.db = db

    def insert(self, record: dict) -> SurveySubmission:
        """Persist one submission and return it with ``id`` and ``created_at`` populated.

        Raises:
            PersistenceFailure: on any database error (the session is rolled back).
        """
        row = SurveySubmission(**record)
        self.db.add(row)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("submission_insert_failed", error=str(e))
            raise PersistenceFailure() from e
        self.db.refresh(row)
        return row

    def count_recent(self, email: str, since: datetime) -> int:
        """Count submissions for ``email`` created strictly after ``since``."""
        stmt = select(func.count()).select_from(SurveySubmission).where(
            SurveySubmission.email == email,
            SurveySubmission.created_at > since,
        )
        try:
            return self.db.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            logger.error("submission_count_failed", error=str(e))
            raise PersistenceFailure() from e

    def list_all(self, search: Optional[str] = None, skip: int = 0,
                 limit: Optional[int] = None) -> tuple[list[SurveySubmission], int]:
        """Return ``(rows, total)`` newest first.

        ``search`` is a case-insensitive substring match over the business
        fields; ``total`` counts matches before ``skip``/``limit`` apply.
        """
        where = []
        if search:
            pattern = f"%{escape_like(search.lower())}%"
            where.append(or_(*[func.lower(col).like(pattern, escape="\\") for col in SEARCHABLE_COLUMNS]))

        stmt = (
            select(SurveySubmission)
            .where(*where)
            .order_by(SurveySubmission.created_at.desc(), SurveySubmission.id.desc())
            .offset(skip)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        count_stmt = select(func.count()).select_from(SurveySubmission).where(*where)
        try:
            rows = self.db.execute(stmt).scalars().all()
            total = self.db.execute(count_stmt).scalar_one()
        except SQLAlchemyError as e:
            logger.error("submission_list_failed", error=str(e))
            raise PersistenceFailure() from e
        return list(rows), total

    def to_dataframe(self) -> pd.DataFrame:
        """All submissions as a DataFrame, newest first, camelCase columns."""
        stmt = select(*EXPORT_COLUMNS.values()).order_by(
            SurveySubmission.created_at.desc(), SurveySubmission.id.desc()
        )
        try:
            df = pd.read_sql(stmt, self.db.bind)
        except SQLAlchemyError as e:
            logger.error("submission_export_failed", error=str(e))
            raise PersistenceFailure() from e
        df.columns = list(EXPORT_COLUMNS)
        return df
