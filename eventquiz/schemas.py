"""
Request schemas for the quiz API.

Each payload is validated here, before any domain logic runs; a
``pydantic.ValidationError`` maps to the VALIDATION_ERROR code.
"""
import math

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Literal, Optional


class AnswerSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    game_id: str = Field(..., alias='gameId', min_length=1)
    player_id: str = Field(..., alias='playerId', min_length=1)
    question_id: str = Field(..., alias='questionId', min_length=1)
    question_index: int = Field(..., alias='questionIndex', ge=0)
    answer_id: str = Field(..., alias='answerId', min_length=1)
    response_time_ms: int = Field(..., alias='responseTimeMs', ge=0)

    @field_validator('response_time_ms', mode='before')
    @classmethod
    def _whole_milliseconds(cls, value):
        # Browsers report fractional milliseconds
        if isinstance(value, float):
            return math.floor(value + 0.5)
        return value


class PlayerRegistration(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    player_id: str = Field(..., alias='playerId', min_length=1, max_length=64)
    nickname: str
    avatar_type: Literal['emoji', 'selfie'] = Field('emoji', alias='avatarType')
    avatar_value: str = Field(..., alias='avatarValue', min_length=1)
    branch_id: Optional[str] = Field(None, alias='branchId')
    consent: bool = False
    phone: Optional[str] = None


class AnswerIn(BaseModel):
    id: Optional[str] = None
    text: str = Field(..., min_length=1)
    is_correct: bool = False


class QuestionIn(BaseModel):
    id: Optional[str] = None
    text: str = Field(..., min_length=1)
    answers: List[AnswerIn] = Field(..., min_length=2, max_length=6)
    time_limit_sec: Optional[int] = Field(None, ge=1, le=600)
    points: Optional[int] = Field(None, ge=0)
    is_active: bool = True

    @field_validator('answers')
    @classmethod
    def _check_answers(cls, value):
        if sum(1 for a in value if a.is_correct) != 1:
            raise ValueError('exactly one answer must be correct')
        ids = [a.id for a in value if a.id]
        if len(ids) != len(set(ids)):
            raise ValueError('answer ids must be unique within a question')
        return value


class BranchIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: Optional[str] = None
    is_active: bool = True


class ScoringSettings(BaseModel):
    mode: Optional[Literal['time_and_streak', 'time_only', 'streak_only', 'simple']] = None
    base_points: Optional[int] = Field(None, ge=0)
    time_bonus_max: Optional[int] = Field(None, ge=0)
    streak_multipliers: Optional[List[float]] = None

    @field_validator('streak_multipliers')
    @classmethod
    def _positive_multipliers(cls, value):
        if value is not None and any(m <= 0 for m in value):
            raise ValueError('streak multipliers must be positive')
        return value


class GameCreate(BaseModel):
    title: Optional[str] = None
    phase: Literal['registration', 'countdown', 'playing', 'finished', 'results'] = 'registration'
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    default_time_limit_sec: Optional[int] = Field(None, ge=1, le=600)
    shuffle_questions: bool = False
    shuffle_answers: bool = True
    branches_enabled: bool = False
    questions: List[QuestionIn] = Field(default_factory=list)
    branches: List[BranchIn] = Field(default_factory=list)

    @model_validator(mode='after')
    def _check_branches_and_ids(self):
        if self.branches_enabled and not self.branches:
            raise ValueError('branches_enabled requires at least one branch')
        ids = [q.id for q in self.questions if q.id]
        if len(ids) != len(set(ids)):
            raise ValueError('question ids must be unique within a game')
        return self


class PhaseChange(BaseModel):
    phase: Literal['registration', 'countdown', 'playing', 'finished', 'results']


def validation_message(exc) -> str:
    """Flatten a pydantic ValidationError into one readable line."""
    parts = []
    for err in exc.errors():
        loc = '.'.join(str(p) for p in err.get('loc', ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get('msg', 'invalid'))
    return '; '.join(parts) or 'Invalid request'
