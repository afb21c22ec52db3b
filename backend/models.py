from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, Index
from db import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class SurveySubmission(Base):
    """One accepted survey submission. Rows are append-only."""
    __tablename__ = "survey_submissions"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    gender = Column(Text, nullable=False)
    nationality = Column(Text, nullable=False)
    email = Column(String(320), nullable=False, index=True)
    phone = Column(String(21), nullable=False)  # optional "+" plus up to 20 chars
    address = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, index=True)

    __table_args__ = (Index("ix_survey_submissions_email_created", "email", "created_at"),)
