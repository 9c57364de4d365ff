from __future__ import annotations

"""Prompt assembly for component generation, refinement and chat.

Pure text helpers: no I/O, no provider calls. History entries are
``{"role": ..., "content": ...}`` mappings; prior components are JSON-able
dicts (usually ``ComponentVersion.model_dump(mode="json", by_alias=True)``).
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..core.config import PRIOR_ARTIFACT_WINDOW, PROMPT_HISTORY_WINDOW


OUTPUT_CONTRACT = """Response format:
Return a JSON object with the following structure:
{
  "jsx": "// The complete React component code",
  "css": "/* The CSS styles for the component */",
  "props": {
    "// Example props object - use strings for function props like 'onClick': 'function'"
  },
  "description": "Brief description of what the component does",
  "componentName": "ComponentName"
}"""

GENERATE_INSTRUCTIONS = f"""You are an expert React component generator. Your task is to create high-quality, functional React components based on user requirements.

Guidelines:
1. Generate clean, modern React functional components using hooks
2. Use CSS modules or inline styles for styling
3. Make components responsive and accessible
4. Include PropTypes or TypeScript types when appropriate
5. Follow React best practices and conventions
6. Make the component self-contained and reusable
7. Use semantic HTML elements
8. Include proper ARIA attributes for accessibility

{OUTPUT_CONTRACT}

Important:
- JSX should be a complete, functional React component
- CSS should be valid CSS that styles the component
- Props should be an example object showing how to use the component (use string values for functions)
- Component should be named appropriately and use PascalCase
- For function props in the example, use string descriptions like "onClick": "function"
"""

REFINE_INSTRUCTIONS = """You are an expert React component refiner. Your task is to modify an existing React component based on user feedback while maintaining its core functionality.

Guidelines:
1. Keep the existing component structure when possible
2. Apply only the requested changes
3. Maintain React best practices
4. Ensure the component remains functional and accessible
5. Preserve working features unless specifically asked to change them"""

CHAT_INSTRUCTIONS = """You are a helpful AI assistant for a React component generator platform.

You can help users with:
- Understanding React concepts
- Explaining component code
- Suggesting improvements
- Answering questions about the platform
- Providing coding tips and best practices

Keep responses concise but helpful. If users ask for component generation or modification, acknowledge their request and suggest they use the appropriate generation tools."""


def render_history(history: Optional[Sequence[Mapping[str, Any]]], window: int = PROMPT_HISTORY_WINDOW) -> str:
    """Render the last ``window`` turns as ``role: content`` lines."""
    if not history:
        return ""
    lines = ["Recent conversation:"]
    for turn in list(history)[-window:]:
        lines.append(f"{turn.get('role') or 'user'}: {turn.get('content') or ''}")
    return "\n".join(lines) + "\n\n"


def render_prior_components(components: Optional[Sequence[Dict[str, Any]]], window: int = PRIOR_ARTIFACT_WINDOW) -> str:
    if not components:
        return ""
    recent = list(components)[-window:]
    return "Previous component context:\n" + json.dumps(recent, indent=2, default=str) + "\n\n"


def compose_generate_prompt(
    prompt: str,
    previous_components: Optional[Sequence[Dict[str, Any]]] = None,
    chat_history: Optional[Sequence[Mapping[str, Any]]] = None,
) -> str:
    parts: List[str] = [GENERATE_INSTRUCTIONS, "\n\n"]
    parts.append(render_prior_components(previous_components))
    parts.append(render_history(chat_history))
    parts.append(f"User Request: {prompt}")
    return "".join(parts)


def compose_refine_prompt(jsx: str, css: str, prompt: str) -> str:
    refined_contract = OUTPUT_CONTRACT.replace(
        "Return a JSON object with the following structure:",
        "Return the refined component in the same JSON format:",
    )
    return (
        f"{REFINE_INSTRUCTIONS}\n\n"
        "Current component:\n"
        f"JSX: {jsx}\n"
        f"CSS: {css}\n\n"
        f"User refinement request: {prompt}\n\n"
        f"{refined_contract}"
    )


def compose_chat_prompt(message: str, chat_history: Optional[Sequence[Mapping[str, Any]]] = None) -> str:
    return f"{CHAT_INSTRUCTIONS}\n\n{render_history(chat_history)}User: {message}"
