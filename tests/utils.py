from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

from fastapi.testclient import TestClient


BUTTON_REPLY = json.dumps(
    {
        "jsx": "function Button({ label }) { return <button className=\"btn\">{label}</button>; }",
        "css": ".btn { padding: 8px; }",
        "props": {"label": "Click me"},
        "description": "A simple button",
        "componentName": "Button",
    }
)


class FakeLLM:
    """Scripted stand-in for the chat client; records every call."""

    def __init__(self, responses: Optional[List[Any]] = None, default: str = BUTTON_REPLY) -> None:
        self.responses = list(responses or [])
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    def invoke(self, messages, **params):
        self.calls.append({"messages": messages, **params})
        reply = self.responses.pop(0) if self.responses else self.default
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(content=reply)

    @property
    def last_prompt(self) -> str:
        return self.calls[-1]["messages"][-1]["content"]


def otp_login(
    client: TestClient,
    email: str,
    *,
    name: Optional[str] = None,
    code: Optional[str] = None,
) -> Tuple[Dict[str, str], Dict[str, Any]]:
    """Request and verify an OTP, returning auth headers and token payload."""
    res = client.post("/api/auth/request-otp", json={"email": email})
    assert res.status_code == 200, res.text
    otp = code or _fetch_otp_from_store(email)
    assert otp, "OTP code missing from the auth store"

    verify_body: Dict[str, Any] = {"email": email, "code": otp}
    if name:
        verify_body["name"] = name
    res = client.post("/api/auth/verify-otp", json=verify_body)
    assert res.status_code == 200, res.text
    data = res.json()["data"]
    return {"Authorization": f"Bearer {data['accessToken']}"}, data


def _fetch_otp_from_store(email: str) -> Optional[str]:
    from src.studio.security import auth

    return auth.get_passcode_book().peek(email)


def demo_headers(client: TestClient) -> Dict[str, str]:
    headers, _ = otp_login(client, "demo@example.com")
    return headers


def headers_for(client: TestClient, email: str, *, name: Optional[str] = None) -> Dict[str, str]:
    headers, _ = otp_login(client, email, name=name or "Test User")
    return headers


def create_session(client: TestClient, headers: Dict[str, str], title: str = "Buttons", **extra: Any) -> str:
    res = client.post("/api/sessions", json={"title": title, **extra}, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["data"]["session"]["sessionId"]
