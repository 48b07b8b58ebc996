import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import get_db
from graph import s_graph
from main import app, get_current_identity
from models import Base, Space, Thread
from schemas import Identity
from services import MessageBroadcaster, PersistenceSink, ReplyRunner
from tests.helpers import ScriptedChatModel


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_thread(db):
    def _make(title="New Chat"):
        space = Space(name="Friends", created_by="user-alice")
        db.add(space)
        db.commit()
        thread = Thread(space_id=space.id, created_by="user-alice", title=title)
        db.add(thread)
        db.commit()
        return thread
    return _make


@pytest.fixture
def chat_model():
    return ScriptedChatModel(["Hel", "lo wo", "rld"])


@pytest.fixture
def identity():
    return {"current": Identity(user_id="user-alice", display_name="Alice")}


@pytest.fixture
def client(session_factory, chat_model, identity):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_identity] = lambda: identity["current"]

    broadcaster = MessageBroadcaster()
    app.state.graph = s_graph.compile()
    app.state.session_factory = session_factory
    app.state.broadcaster = broadcaster
    app.state.reply_runner = ReplyRunner(chat_model, PersistenceSink(session_factory, broadcaster=broadcaster))

    yield TestClient(app)

    app.dependency_overrides.clear()
