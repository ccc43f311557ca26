"""Pydantic request bodies for API endpoints that are not generation requests."""

from pydantic import BaseModel, Field


class EstimateCostBody(BaseModel):
    provider: str
    input_tokens: int = Field(ge=0)
    output_tokens: int = Field(ge=0)
    model: str | None = None


class ModerateBody(BaseModel):
    content: str
    provider: str | None = None
