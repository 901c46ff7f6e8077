"""
Periodhistorik - revisionsspår för stängning och återöppning
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum, Text
from huvudbok.models.base import Base
from huvudbok.config import PeriodKind, PeriodAction


class PeriodHistory(Base):
    """
    En rad per genomförd livscykelövergång

    Skrivs i samma transaktion som själva övergången.
    """
    __tablename__ = "period_history"

    id = Column(Integer, primary_key=True, index=True)

    period_kind = Column(Enum(PeriodKind), nullable=False)
    period_id = Column(Integer, nullable=False, index=True)
    period_name = Column(String(100), nullable=False)

    action = Column(Enum(PeriodAction), nullable=False)
    actor_id = Column(String(64), nullable=False)
    reason = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<PeriodHistory({self.period_kind.value} {self.period_id}: {self.action.value})>"
