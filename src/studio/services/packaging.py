from __future__ import annotations

import io
import json
import re
import zipfile
from typing import Any, Dict

from ..domain.session_models import ComponentVersion, Session


_NAME_PATTERN = re.compile(r"(?:function|const)\s+(\w+)")


def component_name_from_jsx(jsx: str) -> str:
    match = _NAME_PATTERN.search(jsx or "")
    return match.group(1) if match else "Component"


def build_package_manifest(name: str, session: Session, author: str) -> Dict[str, Any]:
    return {
        "name": f"{name.lower()}-component",
        "version": "1.0.0",
        "description": f"Generated React component - {session.title}",
        "main": f"{name}.jsx",
        "dependencies": {
            "react": "^18.0.0",
            "react-dom": "^18.0.0",
        },
        "keywords": ["react", "component", "generated"],
        "author": author,
    }


def build_readme(name: str, session: Session, component: ComponentVersion) -> str:
    props = component.props or {}
    usage_props = " ".join(f"{key}={{{json.dumps(value)}}}" for key, value in props.items())
    prop_lines = "\n".join(
        f"- `{key}`: {type(value).__name__} - Example: `{json.dumps(value)}`" for key, value in props.items()
    )
    lines = [
        f"# {name} Component",
        "",
        "Generated with Component Studio",
        "",
        "## Usage",
        "",
        "```jsx",
        f"import {name} from './{name}';",
        "",
        "function App() {",
        "  return (",
        "    <div>",
        f"      <{name} {usage_props} />",
        "    </div>",
        "  );",
        "}",
        "```",
        "",
        "## Props",
        "",
        prop_lines,
        "",
        "## Generated",
        f"- Session: {session.title}",
        f"- Version: {component.version}",
        f"- Created: {component.created_at.isoformat()}",
    ]
    if component.generation_prompt:
        lines.append(f"- Prompt: {component.generation_prompt}")
    return "\n".join(lines) + "\n"


def build_component_archive(session: Session, component: ComponentVersion, author: str) -> bytes:
    """Bundle one component version as a ZIP: code, styles, manifest, readme."""
    name = component_name_from_jsx(component.jsx)
    mem = io.BytesIO()
    with zipfile.ZipFile(mem, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
        zf.writestr(f"{name}.jsx", component.jsx)
        if component.css:
            zf.writestr(f"{name}.css", component.css)
        zf.writestr("package.json", json.dumps(build_package_manifest(name, session, author), indent=2))
        zf.writestr("README.md", build_readme(name, session, component))
    return mem.getvalue()
