from sqlalchemy import Column, ForeignKey, Index, Integer, String

from tablepos.core.database import Base


class ModifierAssignment(Base):
    __tablename__ = "modifier_assignments"
    __table_args__ = (
        Index(
            "uq_modifier_assignments_group_entity",
            "group_id",
            "entity_type",
            "entity_id",
            unique=True,
        ),
        Index("ix_modifier_assignments_entity", "entity_type", "entity_id"),
    )

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("modifier_groups.id"), nullable=False)
    entity_type = Column(String(16), nullable=False)  # category / product
    entity_id = Column(Integer, nullable=False)
