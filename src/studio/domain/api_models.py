from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import Field, StringConstraints

from .session_models import StudioModel


SessionId = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^[0-9a-f]{32}$")]
GeneratePrompt = Annotated[str, StringConstraints(strip_whitespace=True, min_length=5, max_length=2000)]
RefinePrompt = Annotated[str, StringConstraints(strip_whitespace=True, min_length=5, max_length=1000)]
ChatText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]
Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Description = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]
Tag = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=30)]


class GenerateRequest(StudioModel):
    prompt: GeneratePrompt
    session_id: SessionId
    model: Optional[str] = None


class RefineRequest(StudioModel):
    prompt: RefinePrompt
    session_id: SessionId
    component_version: Optional[int] = Field(default=None, ge=1)
    model: Optional[str] = None


class ChatRequest(StudioModel):
    message: ChatText
    session_id: Optional[SessionId] = None
    model: Optional[str] = None


class SettingsPatch(StudioModel):
    auto_save: Optional[bool] = None
    model: Optional[str] = None
    max_tokens: Optional[int] = Field(default=None, ge=1)


class SessionCreate(StudioModel):
    title: Title
    description: Optional[Description] = None
    tags: Optional[List[Tag]] = None
    settings: Optional[SettingsPatch] = None


class SessionUpdate(StudioModel):
    title: Optional[Title] = None
    description: Optional[Description] = None
    tags: Optional[List[Tag]] = None
    status: Optional[Literal["active", "archived"]] = None
    is_public: Optional[bool] = None
    settings: Optional[SettingsPatch] = None


class ComponentUpdate(StudioModel):
    jsx: Annotated[str, StringConstraints(strip_whitespace=True, min_length=10)]
    css: Optional[str] = None
    props: Optional[Dict[str, Any]] = None
