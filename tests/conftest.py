import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment variables
os.environ["HISTORY_DB_PATH"] = ""  # no chat.db in the working tree
os.environ["ALLOWED_ORIGINS"] = "*"
os.environ["APP_HOST"] = "127.0.0.1"

# Import after setting up environment
from chat_relay.config import Settings  # noqa: E402
from chat_relay.main import create_app  # noqa: E402
from chat_relay.schemas import ChatMessage  # noqa: E402


@pytest.fixture
def make_client():
    """Build an isolated app + TestClient per call; lifespan runs on enter."""
    clients = []

    def _make(**overrides):
        settings = Settings(**{"HISTORY_DB_PATH": "", **overrides})
        test_client = TestClient(create_app(settings))
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield _make

    for test_client in reversed(clients):
        test_client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    """Create a test client with an in-memory relay and no durable store."""
    return make_client()


@pytest.fixture
def relay(client):
    return client.app.state.relay


@pytest.fixture
def sample_history():
    """Sample chat history for testing, oldest first."""
    return [
        ChatMessage(user="alice", text="hello", ts=1234567890),
        ChatMessage(user="bob", text="hi there", ts=1234567891),
    ]
