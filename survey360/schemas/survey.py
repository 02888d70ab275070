from datetime import datetime
from pydantic import BaseModel, Field


class SurveyCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    definition: dict = Field(default_factory=dict, description="Survey document: pages -> elements")
    is_self_evaluation: bool = False


class SurveyUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    definition: dict | None = None
    is_self_evaluation: bool | None = None
    is_active: bool | None = None


class SurveyOut(BaseModel):
    id: str
    title: str
    description: str | None
    is_self_evaluation: bool
    is_active: bool
    question_count: int
    created_at: datetime
    updated_at: datetime | None


class SurveyDetailOut(SurveyOut):
    definition: dict
