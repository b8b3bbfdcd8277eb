"""Function-score envelope.

Scoring functions registered while clauses are built are kept here and
only turned into a ``function_score`` query when the document compiles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from esbuilder.constants import BOOST_MODES, NESTED_FUNCTION_WEIGHT, SCORE_MODES
from esbuilder.errors import InvalidArgumentError
from esbuilder.query import Query


@dataclass(frozen=True)
class ScoreFunction:
    """A filter clause and the weight it adds when it matches."""

    filter: Query
    weight: float = NESTED_FUNCTION_WEIGHT

    def to_dict(self) -> Dict[str, Any]:
        return {"filter": self.filter.to_dict(), "weight": self.weight}


@dataclass(frozen=True)
class FunctionScoreSettings:
    """Combination modes chosen when the query was wrapped."""

    score_mode: str = "sum"
    boost_mode: str = "replace"

    def __post_init__(self) -> None:
        if self.score_mode not in SCORE_MODES:
            raise InvalidArgumentError(
                f"Invalid score_mode [{self.score_mode}].",
                details={"allowed": sorted(SCORE_MODES)},
            )
        if self.boost_mode not in BOOST_MODES:
            raise InvalidArgumentError(
                f"Invalid boost_mode [{self.boost_mode}].",
                details={"allowed": sorted(BOOST_MODES)},
            )


@dataclass
class FunctionScoreQuery(Query):
    """Wraps a query with weighted scoring functions."""

    query: Query
    functions: List[ScoreFunction] = field(default_factory=list)
    settings: FunctionScoreSettings = field(default_factory=FunctionScoreSettings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "function_score": {
                "query": self.query.to_dict(),
                "functions": [f.to_dict() for f in self.functions],
                "score_mode": self.settings.score_mode,
                "boost_mode": self.settings.boost_mode,
            }
        }

