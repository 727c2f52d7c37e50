from __future__ import annotations

from datetime import datetime
from typing import ClassVar, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import db
from .errors import UnknownEntityType


class TimeStampedModel:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class HierarchyNode(TimeStampedModel):
    """Columns and navigation shared by every level of the training catalogue.

    Course durations are entered by hand and are the only ground truth. The
    ``duration_minutes`` of a container is a cached aggregate of its active
    children, written by the duration engine.
    """

    entity_type: ClassVar[str]
    label: ClassVar[str]
    plural_key: ClassVar[str]
    is_leaf: ClassVar[bool] = False

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def parent(self) -> Optional["HierarchyNode"]:
        return None

    def children(self) -> list["HierarchyNode"]:
        return []

    def active_children(self) -> list["HierarchyNode"]:
        return [child for child in self.children() if child.is_active]

    def ancestors(self) -> list["HierarchyNode"]:
        chain: list[HierarchyNode] = []
        node = self.parent
        while node is not None:
            chain.append(node)
            node = node.parent
        return chain

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<{type(self).__name__} {self.id} {self.title!r}>"


class Formation(db.Model, HierarchyNode):
    entity_type = "formation"
    label = "Formation"
    plural_key = "formations"

    id: Mapped[int] = mapped_column(primary_key=True)

    modules: Mapped[List["Module"]] = relationship(
        back_populates="formation",
        cascade="all, delete-orphan",
        order_by=lambda: (Module.position, Module.id),
    )

    __table_args__ = (
        CheckConstraint("duration_minutes >= 0", name="chk_formation_duration_non_negative"),
    )

    def children(self) -> list[HierarchyNode]:
        return list(self.modules)


class Module(db.Model, HierarchyNode):
    entity_type = "module"
    label = "Module"
    plural_key = "modules"

    id: Mapped[int] = mapped_column(primary_key=True)
    formation_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("formation.id", ondelete="CASCADE")
    )

    formation: Mapped[Optional[Formation]] = relationship(back_populates="modules")
    chapters: Mapped[List["Chapter"]] = relationship(
        back_populates="module",
        cascade="all, delete-orphan",
        order_by=lambda: (Chapter.position, Chapter.id),
    )

    __table_args__ = (
        CheckConstraint("duration_minutes >= 0", name="chk_module_duration_non_negative"),
    )

    @property
    def parent(self) -> Optional[HierarchyNode]:
        return self.formation

    def children(self) -> list[HierarchyNode]:
        return list(self.chapters)


class Chapter(db.Model, HierarchyNode):
    entity_type = "chapter"
    label = "Chapitre"
    plural_key = "chapters"

    id: Mapped[int] = mapped_column(primary_key=True)
    module_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("module.id", ondelete="CASCADE")
    )

    module: Mapped[Optional[Module]] = relationship(back_populates="chapters")
    courses: Mapped[List["Course"]] = relationship(
        back_populates="chapter",
        cascade="all, delete-orphan",
        order_by=lambda: (Course.position, Course.id),
    )

    __table_args__ = (
        CheckConstraint("duration_minutes >= 0", name="chk_chapter_duration_non_negative"),
    )

    @property
    def parent(self) -> Optional[HierarchyNode]:
        return self.module

    def children(self) -> list[HierarchyNode]:
        return list(self.courses)


class Course(db.Model, HierarchyNode):
    entity_type = "course"
    label = "Cours"
    plural_key = "courses"
    is_leaf = True

    id: Mapped[int] = mapped_column(primary_key=True)
    chapter_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("chapter.id", ondelete="CASCADE")
    )

    chapter: Mapped[Optional[Chapter]] = relationship(back_populates="courses")

    __table_args__ = (
        CheckConstraint("duration_minutes >= 0", name="chk_course_duration_non_negative"),
    )

    @property
    def parent(self) -> Optional[HierarchyNode]:
        return self.chapter


NODE_TYPES: dict[str, type[HierarchyNode]] = {
    Formation.entity_type: Formation,
    Module.entity_type: Module,
    Chapter.entity_type: Chapter,
    Course.entity_type: Course,
}

# Leaves first so that containers aggregate values settled by the level below.
SYNC_ORDER: tuple[str, ...] = ("course", "chapter", "module", "formation")

# Top-down order used by the dashboards.
DISPLAY_ORDER: tuple[str, ...] = tuple(reversed(SYNC_ORDER))

ALL_LEVELS = "all"


def resolve_node_type(entity_type: object) -> type[HierarchyNode]:
    if not isinstance(entity_type, str):
        raise UnknownEntityType(entity_type)
    node_type = NODE_TYPES.get(entity_type.strip().lower())
    if node_type is None:
        raise UnknownEntityType(entity_type)
    return node_type


def resolve_levels(level_filter: object) -> list[type[HierarchyNode]]:
    """Return the node types selected by ``level_filter`` in bottom-up order."""

    if level_filter is None or level_filter == "":
        level_filter = ALL_LEVELS
    if not isinstance(level_filter, str):
        raise UnknownEntityType(level_filter)
    value = level_filter.strip().lower()
    if value == ALL_LEVELS:
        return [NODE_TYPES[name] for name in SYNC_ORDER]
    return [resolve_node_type(value)]


def active_nodes(node_type: type[HierarchyNode], entity_id: int | None = None) -> list[HierarchyNode]:
    query = node_type.query.filter_by(is_active=True)
    if entity_id is not None:
        query = query.filter_by(id=entity_id)
    return query.order_by(node_type.id).all()


def count_active(node_type: type[HierarchyNode]) -> int:
    return node_type.query.filter_by(is_active=True).count()
