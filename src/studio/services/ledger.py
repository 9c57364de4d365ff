from __future__ import annotations

"""Session/version bookkeeping.

Every mutation reloads the session, applies the change and commits through
``SessionStore.save``. The store rejects the write if the session's
``revision`` moved since it was read, so version numbers stay unique and
strictly increasing and no committed message or version is overwritten.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from ..core.config import HISTORY_FETCH_WINDOW, PRIOR_ARTIFACT_WINDOW
from ..core.state_machine import MUTABLE_STATUSES
from ..domain.errors import NotFoundError
from ..domain.session_models import (
    Artifact,
    ComponentVersion,
    GenerationMetadata,
    Message,
    MessageMetadata,
    Session,
)
from ..infrastructure.session_store import SessionStore
from .generation import GenerationResult, PromptContext


logger = logging.getLogger("studio.ledger")

SESSION_NOT_FOUND = "Session not found or access denied"
VERSION_NOT_FOUND = "Component version not found"


def _assistant_metadata(meta: GenerationMetadata) -> MessageMetadata:
    return MessageMetadata(tokens=meta.tokens, model=meta.model, processing_time=meta.processing_time)


class SessionLedger:
    def __init__(self, store: SessionStore, manual_edit_mode: str = "version") -> None:
        self._store = store
        self._manual_edit_mode = manual_edit_mode

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def find(self, session_id: str, user_id: str, statuses: Iterable[str] = MUTABLE_STATUSES) -> Optional[Session]:
        return self._store.get(session_id, user_id, statuses)

    def load(self, session_id: str, user_id: str, statuses: Iterable[str] = MUTABLE_STATUSES) -> Session:
        session = self.find(session_id, user_id, statuses)
        if session is None:
            raise NotFoundError(SESSION_NOT_FOUND)
        return session

    def generation_context(self, session: Session) -> PromptContext:
        history = [{"role": m.role, "content": m.content} for m in session.messages[-HISTORY_FETCH_WINDOW:]]
        previous = [
            c.model_dump(mode="json", by_alias=True)
            for c in session.components[-PRIOR_ARTIFACT_WINDOW:]
        ]
        return PromptContext(chat_history=history, previous_components=previous)

    def resolve_refinement_target(self, session: Session, component_version: Optional[int] = None) -> ComponentVersion:
        target = component_version or session.current_version
        component = session.find_version(target)
        if component is None:
            raise NotFoundError(VERSION_NOT_FOUND)
        return component

    def _require_version(self, session: Session, version: int) -> ComponentVersion:
        component = session.find_version(version)
        if component is None:
            raise NotFoundError(VERSION_NOT_FOUND)
        return component

    # ------------------------------------------------------------------
    # Appends
    # ------------------------------------------------------------------
    def _append_version(
        self,
        session: Session,
        artifact: Artifact,
        generation_prompt: str,
        metadata: GenerationMetadata,
    ) -> ComponentVersion:
        component = ComponentVersion(
            version=session.next_version_number(),
            jsx=artifact.jsx,
            css=artifact.css,
            props=dict(artifact.props),
            description=artifact.description,
            component_name=artifact.component_name,
            generation_prompt=generation_prompt,
            metadata=metadata.model_copy(),
        )
        session.components.append(component)
        session.current_version = component.version
        return component

    def _commit(self, session: Session) -> Session:
        return self._store.save(session)

    def append_generation(
        self,
        session_id: str,
        user_id: str,
        prompt: str,
        result: GenerationResult,
    ) -> Tuple[Session, ComponentVersion]:
        session = self.load(session_id, user_id)
        artifact: Artifact = result.data
        session.messages.append(Message(role="user", content=prompt))
        session.messages.append(
            Message(
                role="assistant",
                content=f"I've generated a {artifact.component_name} component for you. {artifact.description}",
                metadata=_assistant_metadata(result.metadata),
            )
        )
        component = self._append_version(session, artifact, prompt, result.metadata)
        self._commit(session)
        logger.info("Appended generated v%s to session %s", component.version, session_id)
        return session, component

    def append_refinement(
        self,
        session_id: str,
        user_id: str,
        prompt: str,
        result: GenerationResult,
        target_version: int,
    ) -> Tuple[Session, ComponentVersion]:
        session = self.load(session_id, user_id)
        self._require_version(session, target_version)
        artifact: Artifact = result.data
        session.messages.append(
            Message(
                role="user",
                content=prompt,
                metadata=MessageMetadata(action="refine", target_version=target_version),
            )
        )
        session.messages.append(
            Message(
                role="assistant",
                content=f"I've refined the component based on your request. {artifact.description}",
                metadata=_assistant_metadata(result.metadata),
            )
        )
        component = self._append_version(
            session,
            artifact,
            f"Refinement of v{target_version}: {prompt}",
            result.metadata,
        )
        self._commit(session)
        logger.info("Appended refinement v%s (from v%s) to session %s", component.version, target_version, session_id)
        return session, component

    def append_chat_exchange(
        self,
        session_id: str,
        user_id: str,
        message: str,
        reply: str,
        metadata: GenerationMetadata,
    ) -> Session:
        session = self.load(session_id, user_id)
        session.messages.append(Message(role="user", content=message))
        session.messages.append(Message(role="assistant", content=reply, metadata=_assistant_metadata(metadata)))
        return self._commit(session)

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------
    def manual_edit(
        self,
        session_id: str,
        user_id: str,
        version: int,
        jsx: str,
        css: Optional[str] = None,
        props: Optional[Dict[str, Any]] = None,
    ) -> ComponentVersion:
        """Apply a hand edit to ``version``.

        In ``version`` mode the edit becomes a new version and the source is
        left untouched. In ``in_place`` mode the source version's payload is
        overwritten and no version is added.
        """
        session = self.load(session_id, user_id)
        source = self._require_version(session, version)
        if self._manual_edit_mode == "in_place":
            source.jsx = jsx
            if css is not None:
                source.css = css
            if props is not None:
                source.props = props
            edited = source
        else:
            artifact = source.as_artifact().model_copy(
                update={
                    "jsx": jsx,
                    "css": source.css if css is None else css,
                    "props": source.props if props is None else props,
                }
            )
            edited = self._append_version(
                session,
                artifact,
                f"Manual edit of v{version}",
                source.metadata.model_copy(update={"edited_from": version, "duplicated_from": None}),
            )
        session.messages.append(
            Message(
                role="user",
                content=f"Manually updated component version {version}",
                metadata=MessageMetadata(
                    action="manual_edit",
                    target_version=version,
                    new_version=None if edited.version == version else edited.version,
                ),
            )
        )
        self._commit(session)
        return edited

    def duplicate_version(self, session_id: str, user_id: str, version: int) -> ComponentVersion:
        session = self.load(session_id, user_id)
        source = self._require_version(session, version)
        duplicate = self._append_version(
            session,
            source.as_artifact(),
            f"Duplicate of v{version}",
            source.metadata.model_copy(update={"duplicated_from": version}),
        )
        session.messages.append(
            Message(
                role="user",
                content=f"Duplicated component version {version} as version {duplicate.version}",
                metadata=MessageMetadata(action="duplicate", source_version=version, new_version=duplicate.version),
            )
        )
        self._commit(session)
        return duplicate

    def set_current(self, session_id: str, user_id: str, version: int) -> int:
        session = self.load(session_id, user_id)
        self._require_version(session, version)
        session.current_version = version
        self._commit(session)
        return version
