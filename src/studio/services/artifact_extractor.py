from __future__ import annotations

"""Turn free-text model output into an :class:`Artifact`.

Models are asked for a JSON object but routinely wrap it in prose, fence the
code inside string values, or emit bare JavaScript function literals as
example props. ``extract_artifact`` tolerates all of that and never raises:
it degrades to fenced-block scraping, and finally to the raw response as code.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..domain.session_models import Artifact


logger = logging.getLogger("studio.extractor")

FALLBACK_DESCRIPTION = "Generated React component"
FALLBACK_NAME = "GeneratedComponent"
REFINE_FAILED_DESCRIPTION = "Component refinement failed, returned original"
FUNCTION_PLACEHOLDER = '"function() { ... }"'

_JSON_SPAN = re.compile(r"\{[\s\S]*\}")
_ARROW_LITERAL = re.compile(r"(:\s*)\([^)]*\)\s*=>\s*\{[^}]*\}")
_FUNCTION_LITERAL = re.compile(r"(:\s*)function\s*\([^)]*\)\s*\{[^}]*\}")

# Fences inside parsed string fields; language label optional for code
_CODE_FIELD_FENCE = re.compile(r"```(?:jsx|tsx|javascript|js)?\n?([\s\S]*?)\n?```")
_CSS_FIELD_FENCE = re.compile(r"```css\n?([\s\S]*?)\n?```")

# Fences in the raw response; language label required
_CODE_BLOCK = re.compile(r"```(?:jsx|tsx|javascript|js)\n([\s\S]*?)\n```")
_CSS_BLOCK = re.compile(r"```css\n([\s\S]*?)\n```")


def neutralize_function_literals(text: str) -> str:
    """Replace inline function values with a quoted placeholder."""
    text = _ARROW_LITERAL.sub(lambda m: m.group(1) + FUNCTION_PLACEHOLDER, text)
    return _FUNCTION_LITERAL.sub(lambda m: m.group(1) + FUNCTION_PLACEHOLDER, text)


def strip_code_fence(value: str) -> str:
    if "```" not in value:
        return value
    match = _CODE_FIELD_FENCE.search(value)
    return match.group(1).strip() if match else value


def strip_css_fence(value: str) -> str:
    if "```" not in value:
        return value
    match = _CSS_FIELD_FENCE.search(value)
    return match.group(1).strip() if match else value


def _parse_structured(text: str) -> Optional[Dict[str, Any]]:
    match = _JSON_SPAN.search(text)
    if not match:
        return None
    span = match.group(0)
    # Rewritten text only when the span is not already valid JSON
    for candidate in (span, neutralize_function_literals(span)):
        try:
            data = json.loads(candidate)
            break
        except ValueError:
            continue
    else:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("jsx"), str):
        return None
    return data


def _artifact_from_structured(data: Dict[str, Any]) -> Optional[Artifact]:
    payload: Dict[str, Any] = {"jsx": strip_code_fence(data["jsx"])}
    css = data.get("css")
    if isinstance(css, str):
        payload["css"] = strip_css_fence(css)
    if isinstance(data.get("props"), dict):
        payload["props"] = data["props"]
    if isinstance(data.get("description"), str):
        payload["description"] = data["description"]
    if isinstance(data.get("componentName"), str) and data["componentName"].strip():
        payload["component_name"] = data["componentName"]
    try:
        return Artifact(**payload)
    except ValidationError:
        return None


def extract_from_fences(text: str) -> Artifact:
    code = _CODE_BLOCK.search(text)
    css = _CSS_BLOCK.search(text)
    return Artifact(
        jsx=code.group(1) if code else text,
        css=css.group(1) if css else "",
        props={},
        description=FALLBACK_DESCRIPTION,
        component_name=FALLBACK_NAME,
    )


def extract_artifact(text: str, fallback: Optional[Artifact] = None) -> Artifact:
    """Best-effort structured extraction; never raises.

    ``fallback`` is the artifact being refined. It is returned (with a
    failure description) only when the response carries neither structured
    data nor a fenced code block.
    """
    text = text or ""
    data = _parse_structured(text)
    if data is not None:
        artifact = _artifact_from_structured(data)
        if artifact is not None:
            return artifact
    logger.info("Structured parse failed; falling back to fenced blocks", extra={"chars": len(text)})
    if fallback is not None and not _CODE_BLOCK.search(text):
        return fallback.model_copy(update={"description": REFINE_FAILED_DESCRIPTION}, deep=True)
    return extract_from_fences(text)
