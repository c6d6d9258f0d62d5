"""Database models for bet series and their bets."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from wagerboard.db.utils import dt_iso
from wagerboard.errors import InvalidConfig
from wagerboard.standings.presets import get_preset
from wagerboard.standings.types import (
    Bet,
    BonusRules,
    ConfidenceRange,
    ScoringConfig,
    Series,
)

from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .participant import SeriesParticipant


class BetSeries(Base):
    """A series of bets scored and ranked together.

    The scoring columns mirror :class:`~wagerboard.standings.types.ScoringConfig`;
    :meth:`to_view` converts the row and its children into the immutable value
    consumed by the standings engine.
    """

    __tablename__ = "bet_series"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    series_type: Mapped[str] = mapped_column(String(50), nullable=False, default="custom_series")
    """Preset key from :data:`~wagerboard.standings.presets.SERIES_PRESETS`."""

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Identifier of the organizer in the external account system."""

    scoring_method: Mapped[str] = mapped_column(String(50), nullable=False, default="points_per_correct")
    points_per_correct: Mapped[float] = mapped_column(Float, nullable=False, default=1)
    perfect_week_bonus: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    streak_bonus: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    difficulty_multiplier: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    confidence_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    confidence_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    max_participants: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    allow_late_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    bets: Mapped[list["SeriesBet"]] = relationship(
        back_populates="series",
        cascade="all, delete-orphan",
        order_by="SeriesBet.bet_order",
    )
    participants: Mapped[list["SeriesParticipant"]] = relationship(
        back_populates="series",
        cascade="all, delete-orphan",
        order_by="SeriesParticipant.joined_at",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft','registration_open','active','completed','cancelled')",
            name="status_enum",
        ),
        CheckConstraint(
            "scoring_method IN ('points_per_correct','weighted_scoring',"
            "'confidence_points','elimination_style','percentage_based')",
            name="scoring_method_enum",
        ),
    )

    def __init__(
        self,
        *,
        title: str,
        series_type: str = "custom_series",
        status: str = "draft",
        description: Optional[str] = None,
        created_by: Optional[str] = None,
        scoring: Optional[ScoringConfig] = None,
        max_participants: Optional[int] = None,
        allow_late_entry: bool = True,
    ) -> None:
        self.title = title
        self.series_type = series_type
        self.status = status
        self.description = description
        self.created_by = created_by
        self.max_participants = max_participants
        self.allow_late_entry = allow_late_entry
        self.apply_scoring(scoring or ScoringConfig())

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<BetSeries(id={self.id}, title='{self.title}', "
            f"type='{self.series_type}', status='{self.status}')>"
        )

    @classmethod
    def get_by_id(cls, session: Session, series_id: int) -> Optional["BetSeries"]:
        return session.scalar(select(cls).where(cls.id == series_id))

    @property
    def scoring(self) -> ScoringConfig:
        """Scoring configuration assembled from the scoring columns."""
        confidence_range = None
        if self.confidence_min is not None and self.confidence_max is not None:
            confidence_range = ConfidenceRange(min=self.confidence_min, max=self.confidence_max)
        return ScoringConfig(
            method=self.scoring_method,
            base_points=self.points_per_correct,
            bonus=BonusRules(
                perfect_week=self.perfect_week_bonus,
                streak_bonus=self.streak_bonus,
                difficulty_multiplier=self.difficulty_multiplier,
            ),
            confidence_range=confidence_range,
        )

    def apply_scoring(self, scoring: ScoringConfig) -> None:
        """Copy ``scoring`` into the scoring columns.

        Per-bet weights live on :class:`SeriesBet`, so a weight map on
        ``scoring`` is folded into the weights of the bets it names.

        Raises
        ------
        InvalidConfig
            If the weight map holds a non-positive weight or names a bet that
            is not a flushed bet of this series. No column is changed.
        """
        bets_by_id = {str(bet.id): bet for bet in self.bets if bet.id is not None}
        for bet_id, weight in scoring.weights.items():
            if bet_id not in bets_by_id:
                raise InvalidConfig(
                    "weights can only be set for existing bets; give new bets a weight instead",
                    bet_id=bet_id,
                )
            if weight <= 0:
                raise InvalidConfig(f"weight must be positive, got {weight}", bet_id=bet_id)
        for bet_id, weight in scoring.weights.items():
            bets_by_id[bet_id].weight = weight

        self.scoring_method = scoring.method
        self.points_per_correct = scoring.base_points
        self.perfect_week_bonus = scoring.bonus.perfect_week
        self.streak_bonus = scoring.bonus.streak_bonus
        self.difficulty_multiplier = scoring.bonus.difficulty_multiplier
        bounds = scoring.confidence_range
        self.confidence_min = bounds.min if bounds is not None else None
        self.confidence_max = bounds.max if bounds is not None else None

    def next_bet_order(self) -> int:
        return max((bet.bet_order for bet in self.bets), default=0) + 1

    def to_view(self) -> Series:
        """Return the immutable engine value for this series."""
        return Series(
            id=str(self.id),
            bets=tuple(bet.to_view() for bet in self.bets),
            scoring=self.scoring,
            participants=tuple(participant.to_view() for participant in self.participants),
            status=self.status,
            series_type=self.series_type,
            max_participants=self.max_participants,
            allow_late_entry=self.allow_late_entry,
            achievements_enabled=get_preset(self.series_type).achievements_enabled,
        )

    def draft_view(self) -> Series:
        """Like :meth:`to_view`, usable before the rows are flushed.

        Unflushed bets have no id yet, so they are keyed by their order.
        """
        bets = tuple(
            replace(bet.to_view(), id=str(bet.id) if bet.id is not None else f"draft-{bet.bet_order}")
            for bet in self.bets
        )
        return replace(self.to_view(), id=str(self.id) if self.id is not None else "draft", bets=bets)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "series_type": self.series_type,
            "status": self.status,
            "created_by": self.created_by,
            "scoring": {
                "method": self.scoring_method,
                "points_per_correct": self.points_per_correct,
                "perfect_week_bonus": self.perfect_week_bonus,
                "streak_bonus": self.streak_bonus,
                "difficulty_multiplier": self.difficulty_multiplier,
                "confidence_range": (
                    [self.confidence_min, self.confidence_max]
                    if self.confidence_min is not None
                    else None
                ),
            },
            "max_participants": self.max_participants,
            "allow_late_entry": self.allow_late_entry,
            "bets": [bet.to_json() for bet in self.bets],
            "created_at": dt_iso(self.created_at),
            "updated_at": dt_iso(self.updated_at),
        }


class SeriesBet(Base):
    """One resolvable bet inside a :class:`BetSeries`."""

    __tablename__ = "series_bets"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    series_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("bet_series.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    sides: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    """Selectable outcomes, e.g. ``["home", "away"]``."""

    weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    difficulty: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    winning_side: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bet_order: Mapped[int] = mapped_column(Integer, nullable=False)
    """Canonical judging sequence within the series."""

    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    series: Mapped["BetSeries"] = relationship(back_populates="bets")

    __table_args__ = (
        UniqueConstraint("series_id", "bet_order", name="series_bets_series_id_bet_order_key"),
        CheckConstraint("status IN ('pending','active','resolved','cancelled')", name="status_enum"),
        CheckConstraint(
            "difficulty IS NULL OR difficulty IN ('easy','medium','hard')",
            name="difficulty_enum",
        ),
    )

    def __init__(
        self,
        *,
        title: str,
        sides: list[str],
        bet_order: int,
        series_id: Optional[int] = None,
        weight: Optional[float] = None,
        difficulty: Optional[str] = None,
        status: str = "pending",
        winning_side: Optional[str] = None,
    ) -> None:
        if series_id is not None:
            self.series_id = series_id
        self.title = title
        self.sides = list(sides)
        self.bet_order = bet_order
        self.weight = weight
        self.difficulty = difficulty
        self.status = status
        self.winning_side = winning_side

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<SeriesBet(id={self.id}, series_id={self.series_id}, "
            f"order={self.bet_order}, status='{self.status}')>"
        )

    def to_view(self) -> Bet:
        return Bet(
            id=str(self.id),
            sides=tuple(self.sides),
            order=self.bet_order,
            status=self.status,
            winning_side=self.winning_side,
            weight=self.weight,
            difficulty=self.difficulty,
            title=self.title,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "sides": list(self.sides),
            "weight": self.weight,
            "difficulty": self.difficulty,
            "status": self.status,
            "winning_side": self.winning_side,
            "order": self.bet_order,
            "resolved_at": dt_iso(self.resolved_at),
        }
