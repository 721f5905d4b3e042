"""
Prompt library models: prompts, compound prompt components and tags
"""
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from app.core.database import Base
from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, ForeignKey,
                        Index, Integer, String, Table, Text, UniqueConstraint)
from sqlalchemy.orm import relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class PromptStatus(str, Enum):
    """Moderation status"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


prompt_tags = Table(
    "prompt_tags",
    Base.metadata,
    Column("prompt_id", String(36), ForeignKey("prompts.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Prompt(Base):
    """A library prompt; compound prompts carry components instead of text"""
    __tablename__ = "prompts"

    id = Column(String(36), primary_key=True, default=_new_id)
    slug = Column(String(120), nullable=False, unique=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    prompt_text = Column(Text, nullable=True)  # NULL for compound prompts
    example_output = Column(Text, nullable=True)
    category = Column(String(100), nullable=False)
    author_name = Column(String(255), nullable=False)
    author_url = Column(String(500), nullable=True)

    status = Column(String(20), nullable=False, default=PromptStatus.PENDING.value)
    rejection_reason = Column(Text, nullable=True)
    featured = Column(Boolean, nullable=False, default=False)

    is_compound = Column(Boolean, nullable=False, default=False)
    max_depth = Column(Integer, nullable=True)

    view_count = Column(Integer, nullable=False, default=0)
    copy_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    components = relationship(
        "CompoundPromptComponent",
        foreign_keys="CompoundPromptComponent.compound_prompt_id",
        back_populates="compound_prompt",
        order_by="CompoundPromptComponent.position",
        cascade="all, delete-orphan",
    )
    tags = relationship("Tag", secondary=prompt_tags, back_populates="prompts", order_by="Tag.name")

    __table_args__ = (
        Index("ix_prompts_status_created_at", "status", "created_at"),
        Index("ix_prompts_is_compound", "is_compound"),
    )

    def __repr__(self):
        return f"<Prompt(id={self.id}, slug={self.slug}, compound={self.is_compound}, status={self.status})>"


class CompoundPromptComponent(Base):
    """One ordered slot of a compound prompt"""
    __tablename__ = "compound_prompt_components"

    id = Column(String(36), primary_key=True, default=_new_id)
    compound_prompt_id = Column(
        String(36), ForeignKey("prompts.id", ondelete="CASCADE"), nullable=False
    )
    component_prompt_id = Column(
        String(36), ForeignKey("prompts.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    position = Column(Integer, nullable=False)
    custom_text_before = Column(Text, nullable=True)
    custom_text_after = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    compound_prompt = relationship(
        "Prompt", foreign_keys=[compound_prompt_id], back_populates="components"
    )
    component_prompt = relationship("Prompt", foreign_keys=[component_prompt_id])

    __table_args__ = (
        UniqueConstraint("compound_prompt_id", "position", name="uq_compound_component_position"),
        CheckConstraint("compound_prompt_id != component_prompt_id", name="ck_component_not_self"),
        Index("ix_compound_components_order", "compound_prompt_id", "position"),
    )

    def __repr__(self):
        return (
            f"<CompoundPromptComponent(compound={self.compound_prompt_id}, "
            f"position={self.position}, component={self.component_prompt_id})>"
        )


class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(50), nullable=False, unique=True)
    slug = Column(String(50), nullable=False, unique=True, index=True)
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    prompts = relationship("Prompt", secondary=prompt_tags, back_populates="tags")

    def __repr__(self):
        return f"<Tag(slug={self.slug}, usage_count={self.usage_count})>"
