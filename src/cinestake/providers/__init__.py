"""External data providers that settle markets."""

from cinestake.providers.base import (
    BoxOfficeProvider,
    CriticScoreProvider,
    OpeningWeekend,
    ScoreReading,
    validate_opening_weekend,
)
from cinestake.providers.box_office import ManualBoxOfficeProvider, RapidAPIBoxOfficeProvider
from cinestake.providers.omdb import OMDbCriticScoreProvider

__all__ = [
    "BoxOfficeProvider",
    "CriticScoreProvider",
    "OpeningWeekend",
    "ScoreReading",
    "validate_opening_weekend",
    "ManualBoxOfficeProvider",
    "RapidAPIBoxOfficeProvider",
    "OMDbCriticScoreProvider",
]
