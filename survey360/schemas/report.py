from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field


class ReportTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=500)
    body: str = Field(min_length=1)


class ReportTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=500)
    body: str | None = Field(default=None, min_length=1)
    is_active: bool | None = None


class ReportTemplateOut(BaseModel):
    id: str
    name: str
    description: str | None
    body: str
    is_active: bool
    created_at: datetime
    updated_at: datetime | None


class ReportRenderRequest(BaseModel):
    template_id: str
    subject_id: str
    survey_id: str
    format: Literal["html", "pdf"] = "html"
