import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="studybuddy-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("GROQ_API_KEY", None)

import pytest
from sqlmodel import SQLModel

from studybuddy.services.llm import UpstreamFailure


class FakeGenerationClient:
    """Stands in for GenerationClient; replays canned raw responses."""

    def __init__(self):
        self.responses = []
        self.error = None
        self.prompts = []

    def complete(self, prompt, *, system, temperature):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0] if self.responses else ""

    def fail(self, message="Generation service unreachable"):
        self.error = UpstreamFailure(message)


@pytest.fixture
def db_engine():
    from studybuddy.db import engine

    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield engine


@pytest.fixture
def fake_llm():
    from studybuddy.main import app
    from studybuddy.services.llm import get_generation_client

    client = FakeGenerationClient()
    app.dependency_overrides[get_generation_client] = lambda: client
    yield client
    app.dependency_overrides.pop(get_generation_client, None)
