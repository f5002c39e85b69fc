"""SQLAlchemy ORM models for refund requests and cashless cards"""

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class RefundRequest(Base):
    """Reimbursement request submitted by a festival-goer"""

    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    account = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    id_card = Column(Text, nullable=True, index=True)
    file_generated = Column(Boolean, nullable=False, default=False, index=True)


class Card(Base):
    """Cashless card with its remaining balance (authoritative ledger)"""

    __tablename__ = "table_cards"

    id = Column(Text, primary_key=True)
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())
