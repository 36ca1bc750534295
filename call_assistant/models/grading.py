"""Grade result produced for a finished call transcript."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

Score = Annotated[int, Field(ge=1, le=10, strict=True)]


class GradeScores(BaseModel):
    """Six sub-scores on a 1-10 integer scale."""

    model_config = ConfigDict(frozen=True)

    tone: Score
    on_script: Score
    presentation: Score
    objection_handling: Score
    speaking: Score
    overall: Score


class GradeResult(BaseModel):
    """Scores plus free-text coaching notes."""

    model_config = ConfigDict(frozen=True)

    grades: GradeScores
    notes: str = ""
