from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, Text

from ..db.session import Base


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    phone = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    specialty = Column(Text, nullable=False, default="")
    hospital = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False)
