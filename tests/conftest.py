import json
import os
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

# Settings are read at import time; point the app at SQLite before yenta is imported.
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.pop("LLM_API_KEY", None)

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from yenta.models import Base
from yenta.rules import KeywordFieldExtractor
from yenta.stepper import QualificationStepper


class StubExtractor:
    """Returns canned fields for exact utterances, {} otherwise."""

    def __init__(self, answers: dict[str, dict[str, str]] | None = None) -> None:
        self.answers = answers or {}
        self.calls: list[str] = []

    def extract(self, utterance: str) -> dict[str, str]:
        self.calls.append(utterance)
        return dict(self.answers.get(utterance, {}))


def chat_completion(content: Any) -> SimpleNamespace:
    """Minimal stand-in for an OpenAI chat completion response."""
    if not isinstance(content, str):
        content = json.dumps(content)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def mock_llm_client(content: Any = None, side_effect: Any = None, *, asynchronous: bool = False) -> MagicMock:
    """Chat client double; `asynchronous` makes `create` awaitable like AsyncOpenAI."""
    client = MagicMock()
    if asynchronous:
        client.chat.completions.create = AsyncMock()
    if side_effect is not None:
        client.chat.completions.create.side_effect = side_effect
    else:
        client.chat.completions.create.return_value = chat_completion(content)
    return client


@pytest.fixture
def keyword_extractor() -> KeywordFieldExtractor:
    return KeywordFieldExtractor()


@pytest.fixture
def stepper(keyword_extractor: KeywordFieldExtractor) -> QualificationStepper:
    """Stepper over the default steps and keyword rules."""
    return QualificationStepper(keyword_extractor)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session
