from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from wagerboard.db.utils import dt_iso
from wagerboard.standings.types import ParticipantSnapshot, normalize_points

from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .participant import SeriesParticipant


class ParticipantStanding(Base):
    """Persisted copy of a participant's snapshot from the latest generation.

    Rows are overwritten in place each time a generation is stored; the
    engine, not this table, is the authority on current standings.
    """

    __tablename__ = "participant_standings"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    participant_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("series_participants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    series_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("bet_series.id", ondelete="CASCADE"), nullable=False, index=True
    )
    generation: Mapped[int] = mapped_column(Integer, nullable=False)
    """Number of the generation this row was copied from."""

    total_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    correct_picks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_picks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    previous_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    achievements: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="registered")
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    participant: Mapped["SeriesParticipant"] = relationship(back_populates="standing")

    __table_args__ = (
        CheckConstraint("current_rank IS NULL OR current_rank >= 1", name="current_rank_positive"),
        CheckConstraint(
            "status IN ('registered','active','eliminated','completed')",
            name="status_enum",
        ),
    )

    def __init__(
        self,
        *,
        participant_id: int,
        series_id: int,
        generation: int,
        computed_at: Optional[datetime] = None,
    ) -> None:
        self.participant_id = participant_id
        self.series_id = series_id
        self.generation = generation
        self.total_score = 0
        self.correct_picks = 0
        self.total_picks = 0
        self.current_streak = 0
        self.longest_streak = 0
        self.achievements = []
        self.status = "registered"
        self.computed_at = computed_at or datetime.now(timezone.utc)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<ParticipantStanding(participant_id={self.participant_id}, "
            f"rank={self.current_rank}, score={self.total_score})>"
        )

    @classmethod
    def for_series(cls, session: Session, series_id: int) -> list["ParticipantStanding"]:
        """Return the stored standings of ``series_id`` in rank order."""
        rows = session.scalars(select(cls).where(cls.series_id == series_id)).all()
        return sorted(rows, key=lambda row: (row.current_rank is None, row.current_rank or 0))

    def apply_snapshot(self, snapshot: ParticipantSnapshot, generation: int, computed_at: datetime) -> None:
        self.generation = generation
        self.total_score = snapshot.total_score
        self.correct_picks = snapshot.correct_picks
        self.total_picks = snapshot.total_picks
        self.current_streak = snapshot.current_streak
        self.longest_streak = snapshot.longest_streak
        self.current_rank = snapshot.rank
        self.previous_rank = snapshot.previous_rank
        self.achievements = sorted(snapshot.achievements)
        self.status = snapshot.status
        self.computed_at = computed_at

    def to_json(self) -> dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "series_id": self.series_id,
            "generation": self.generation,
            "total_score": normalize_points(self.total_score),
            "correct_picks": self.correct_picks,
            "total_picks": self.total_picks,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "rank": self.current_rank,
            "previous_rank": self.previous_rank,
            "achievements": list(self.achievements),
            "status": self.status,
            "computed_at": dt_iso(self.computed_at),
        }
