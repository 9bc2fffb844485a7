import io
import time

import pytest

from app import create_app
from services.config import Config, LoggingConfig, WebServerConfig
from services.logging_setup import teardown_logging


class FakeAuthenticator:
    def __init__(self, users=None):
        self.users = users if users is not None else {"alice": "secret"}
        self.calls = []

    def authenticate(self, username, password):
        self.calls.append(username)
        return self.users.get(username) == password


class FakeClock:
    def __init__(self, now=None):
        # Cookie expiry in the test client is checked against the real clock.
        self.now = time.time() if now is None else now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    teardown_logging()


@pytest.fixture
def root(tmp_path):
    d = tmp_path / "root"
    d.mkdir()
    return d


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def authenticator():
    return FakeAuthenticator()


@pytest.fixture
def config(root):
    return Config(web_server=WebServerConfig(base_dir=str(root), session_hours=1), logging=LoggingConfig())


@pytest.fixture
def app(config, authenticator, clock):
    application = create_app(config, authenticator=authenticator, clock=clock)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(username="alice", password="secret"):
        return client.post("/login", data={"username": username, "password": password})

    return _login


def upload_data(current_path, *files):
    return {
        "currentPath": current_path,
        "uploadFiles": [(io.BytesIO(data), name) for name, data in files],
    }
