"""Database models for series participants and their picks."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from wagerboard.db.utils import dt_iso
from wagerboard.standings.types import Participant, Pick

from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .series import BetSeries, SeriesBet
    from .standing import ParticipantStanding


class SeriesParticipant(Base):
    """A user enrolled in a :class:`~wagerboard.models.series.BetSeries`."""

    __tablename__ = "series_participants"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    series_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("bet_series.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    """Identifier of the user in the external account system."""

    display_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    """Enrolment time; the final ranking tie-breaker."""

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="registered")
    """Lifecycle status as of the last persisted standings generation."""

    series: Mapped["BetSeries"] = relationship(back_populates="participants")
    picks: Mapped[list["SeriesPick"]] = relationship(
        back_populates="participant",
        cascade="all, delete-orphan",
    )
    standing: Mapped[Optional["ParticipantStanding"]] = relationship(
        back_populates="participant",
        cascade="all, delete-orphan",
        uselist=False,
    )

    __table_args__ = (
        UniqueConstraint("series_id", "user_id", name="series_participants_series_id_user_id_key"),
        CheckConstraint(
            "status IN ('registered','active','eliminated','completed')",
            name="status_enum",
        ),
    )

    def __init__(
        self,
        *,
        user_id: str,
        series_id: Optional[int] = None,
        display_name: str = "",
        joined_at: Optional[datetime] = None,
        status: str = "registered",
    ) -> None:
        if series_id is not None:
            self.series_id = series_id
        self.user_id = user_id
        self.display_name = display_name
        self.joined_at = joined_at or datetime.now(timezone.utc)
        self.status = status

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<SeriesParticipant(id={self.id}, series_id={self.series_id}, "
            f"user_id='{self.user_id}', status='{self.status}')>"
        )

    @classmethod
    def get_by_user(
        cls, session: Session, series_id: int, user_id: str
    ) -> Optional["SeriesParticipant"]:
        return session.scalar(
            select(cls).where(cls.series_id == series_id, cls.user_id == user_id)
        )

    def pick_for(self, bet_id: int) -> Optional["SeriesPick"]:
        for pick in self.picks:
            if pick.bet_id == bet_id:
                return pick
        return None

    def to_view(self) -> Participant:
        return Participant(
            id=str(self.id),
            joined_at=self.joined_at,
            display_name=self.display_name or self.user_id,
            picks={str(pick.bet_id): pick.to_view() for pick in self.picks},
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "series_id": self.series_id,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "status": self.status,
            "joined_at": dt_iso(self.joined_at),
        }


class SeriesPick(Base):
    """A participant's selection for one :class:`SeriesBet`.

    Editing a pick updates the row in place; there is at most one pick per
    participant and bet.
    """

    __tablename__ = "series_picks"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    participant_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("series_participants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bet_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("series_bets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    selection: Mapped[str] = mapped_column(String(255), nullable=False)
    confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    participant: Mapped["SeriesParticipant"] = relationship(back_populates="picks")
    bet: Mapped["SeriesBet"] = relationship()

    __table_args__ = (
        UniqueConstraint("participant_id", "bet_id", name="series_picks_participant_id_bet_id_key"),
    )

    def __init__(
        self,
        *,
        bet_id: int,
        selection: str,
        participant_id: Optional[int] = None,
        confidence: Optional[int] = None,
        submitted_at: Optional[datetime] = None,
    ) -> None:
        if participant_id is not None:
            self.participant_id = participant_id
        self.bet_id = bet_id
        self.selection = selection
        self.confidence = confidence
        self.submitted_at = submitted_at or datetime.now(timezone.utc)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<SeriesPick(participant_id={self.participant_id}, bet_id={self.bet_id}, "
            f"selection='{self.selection}')>"
        )

    def to_view(self) -> Pick:
        return Pick(
            bet_id=str(self.bet_id),
            selection=self.selection,
            confidence=self.confidence,
            submitted_at=self.submitted_at,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "bet_id": self.bet_id,
            "selection": self.selection,
            "confidence": self.confidence,
            "submitted_at": dt_iso(self.submitted_at),
        }
