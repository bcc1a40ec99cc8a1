import os

# Configure the app before anything imports config/main.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("STORAGE_BACKEND", "local")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.database import get_db, init_db
from llm import LLMReply
from main import app, get_llm, get_storage
from storage import LocalStorage


class StubLLM:
    def __init__(self, reply="hello", summary="A short summary"):
        self.reply = reply
        self.summary = summary
        self.error = None
        self.summary_error = None
        self.calls = []
        self.summaries = []

    def generate(self, turns, system_prompt=None):
        self.calls.append((list(turns), system_prompt))
        if self.error:
            raise self.error
        return LLMReply(text=self.reply, model="stub")

    def summarize(self, text):
        self.summaries.append(text)
        if self.summary_error:
            raise self.summary_error
        return self.summary


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def stub_llm():
    return StubLLM()


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "uploads"), "http://files.test")


@pytest.fixture
def client(session_factory, stub_llm, storage):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_llm] = lambda: stub_llm
    app.dependency_overrides[get_storage] = lambda: storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
