"""Pydantic schemas for the AI text-transform endpoint."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

MAX_TEXT_LENGTH = 1500

AssistText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_TEXT_LENGTH)]


class ImproveRequest(BaseModel):
    action: Literal["improve", "translate"]
    text: AssistText


class ImproveResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    output_text: str = Field(alias="outputText")
