from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .series import BetSeries, SeriesBet  # noqa: F401
from .participant import SeriesParticipant, SeriesPick  # noqa: F401
from .standing import ParticipantStanding  # noqa: F401

__all__ = [
    "Base",
    "BetSeries",
    "SeriesBet",
    "SeriesParticipant",
    "SeriesPick",
    "ParticipantStanding",
]
