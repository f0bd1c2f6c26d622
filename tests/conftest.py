"""
Shared fixtures: a throwaway SQLite database per test, a fake AI gateway,
and API clients with and without a signed-in user.
"""
import fitz
import pytest
from fastapi.testclient import TestClient

import db
import research_pipeline

AI_CONTENT = """Cardiovascular approvals overview
- FDA approved a new PCSK9 inhibitor for hypercholesterolemia.
- A novel oral anticoagulant received accelerated approval.
short line
- Two heart failure therapies gained expanded indications.
- Post-marketing studies were required for three approvals.
- Label updates added new bleeding risk warnings for the class."""


class FakeGateway:
    """Stands in for llm_gateway.chat_completion and records every call."""

    def __init__(self):
        self.calls = []
        self.content = AI_CONTENT
        self.error = None
        self.on_call = None

    def __call__(self, system_prompt, user_prompt, **kwargs):
        self.calls.append({"system_prompt": system_prompt, "user_prompt": user_prompt})
        if self.on_call is not None:
            self.on_call(system_prompt, user_prompt)
        if self.error is not None:
            raise self.error
        return self.content


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    monkeypatch.setenv("MEDICO_DB_PATH", str(tmp_path / "medico_test.db"))
    db.init_db()
    yield


@pytest.fixture(autouse=True)
def gateway(monkeypatch):
    fake = FakeGateway()
    monkeypatch.setattr(research_pipeline, "chat_completion", fake)
    return fake


@pytest.fixture
def client():
    from app import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sign_up():
    def _sign_up(client, email="analyst@example.com", password="secret123"):
        response = client.post("/api/auth/signup", json={"email": email, "password": password})
        assert response.status_code == 200
        return response.json()

    return _sign_up


@pytest.fixture
def auth_client(client, sign_up):
    session = sign_up(client)
    client.headers.update({"Authorization": f"Bearer {session['access_token']}"})
    client.user = session["user"]
    return client


@pytest.fixture
def make_pdf():
    def _make_pdf(*pages):
        doc = fitz.open()
        for text in pages:
            page = doc.new_page()
            page.insert_text((72, 72), text)
        data = doc.tobytes()
        doc.close()
        return data

    return _make_pdf
