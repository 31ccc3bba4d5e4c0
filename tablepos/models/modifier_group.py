from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from tablepos.core.database import Base


class ModifierGroup(Base):
    __tablename__ = "modifier_groups"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    selection_type = Column(String(16), default="single", nullable=False)  # single / multiple
    min_choices = Column(Integer, default=0, nullable=False)
    max_choices = Column(Integer, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
