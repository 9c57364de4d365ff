from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Dict, List, Literal, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..core.config import DEFAULT_MAX_TOKENS, DEFAULT_MODEL


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return uuid.uuid4().hex


class StudioModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


Role = Literal["user", "assistant"]
SessionStatus = Literal["active", "archived", "deleted"]


class MessageMetadata(StudioModel):
    tokens: Optional[int] = None
    model: Optional[str] = None
    processing_time: Optional[int] = None
    action: Optional[str] = None
    target_version: Optional[int] = None
    source_version: Optional[int] = None
    new_version: Optional[int] = None


class Message(StudioModel):
    message_id: str = Field(default_factory=new_id)
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)


class GenerationMetadata(StudioModel):
    model: Optional[str] = None
    tokens: Optional[int] = None
    processing_time: Optional[int] = None
    started_at: Optional[int] = None
    duplicated_from: Optional[int] = None
    edited_from: Optional[int] = None


class Artifact(StudioModel):
    """Structured output of one generation or refinement call."""

    jsx: str
    css: str = ""
    props: Dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    component_name: str = "GeneratedComponent"


class ComponentVersion(StudioModel):
    version: int
    jsx: str
    css: str = ""
    props: Dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    component_name: Optional[str] = None
    generation_prompt: Optional[str] = None
    metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)
    created_at: datetime = Field(default_factory=utc_now)

    def as_artifact(self) -> Artifact:
        return Artifact(
            jsx=self.jsx,
            css=self.css,
            props=dict(self.props),
            description=self.description,
            component_name=self.component_name or "Component",
        )


class ComponentVersionSummary(StudioModel):
    version: int
    created_at: datetime
    generation_prompt: Optional[str] = None
    metadata: GenerationMetadata


class SessionSettings(StudioModel):
    auto_save: bool = True
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS


class SessionStatistics(StudioModel):
    total_messages: int = 0
    total_tokens: int = 0
    last_active_at: datetime = Field(default_factory=utc_now)


class Session(StudioModel):
    session_id: str = Field(default_factory=new_id)
    user_id: str
    title: str = "New Component Session"
    description: str = ""
    messages: List[Message] = Field(default_factory=list)
    components: List[ComponentVersion] = Field(default_factory=list)
    current_version: int = 0
    status: SessionStatus = "active"
    tags: List[str] = Field(default_factory=list)
    is_public: bool = False
    settings: SessionSettings = Field(default_factory=SessionSettings)
    statistics: SessionStatistics = Field(default_factory=SessionStatistics)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    # Bumped by the store on every committed write
    revision: int = 0

    def find_version(self, version: int) -> Optional[ComponentVersion]:
        for component in self.components:
            if component.version == version:
                return component
        return None

    def next_version_number(self) -> int:
        return len(self.components) + 1

    def recompute_statistics(self) -> None:
        self.statistics.total_messages = len(self.messages)
        self.statistics.total_tokens = sum(m.metadata.tokens or 0 for m in self.messages)
        self.statistics.last_active_at = utc_now()

    def summary(self) -> "SessionSummary":
        data = self.model_dump(exclude={"messages", "components"})
        return SessionSummary(**data, component_count=len(self.components))


class SessionSummary(StudioModel):
    """List view of a session without messages and components."""

    session_id: str
    user_id: str
    title: str
    description: str
    current_version: int
    status: SessionStatus
    tags: List[str]
    is_public: bool
    settings: SessionSettings
    statistics: SessionStatistics
    created_at: datetime
    updated_at: datetime
    component_count: int = 0


class Pagination(StudioModel):
    current_page: int
    total_pages: int
    total_sessions: int
    has_next: bool
    has_prev: bool
