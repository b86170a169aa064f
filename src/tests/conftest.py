from __future__ import annotations

import asyncio

import pytest

from urpaq_rag.config import AppSettings, PipelineSettings
from urpaq_rag.container import build_container
from urpaq_rag.index import InMemoryDocumentIndex
from urpaq_rag.models import Document


class FakeBackend:
    """Generation backend returning a canned answer, optionally slow or failing."""

    def __init__(self, answer: str = "Занятия проходят по расписанию звонков.", delay: float = 0.0, error=None):
        self.answer = answer
        self.delay = delay
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.answer


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


CORPUS = [
    Document(
        id="schedule_bells",
        name="Расписание звонков",
        text="1 смена: 1 занятие 9:00 - 9:40, 2 занятие 9:45 - 10:25. 2 смена: 1 занятие 15:00 - 15:40.",
    ),
    Document(
        id="contacts",
        name="Контакты и местоположение",
        text="Адрес: город Петропавловск, улица Жамбыла Жабаева, 55 А. Телефон приемной: 8 7152 34-02-40.",
    ),
    Document(
        id="directions",
        name="Направления деятельности",
        text="IT: лаборатория программирования, кабинет 3d-прототипирования. Театральные и хореографические кружки.",
    ),
]


def make_settings(**pipeline) -> AppSettings:
    defaults = {"initial_backoff_seconds": 0.001, "timeout_seconds": 5.0, "generation_timeout_seconds": 2.0}
    defaults.update(pipeline)
    return AppSettings(pipeline=PipelineSettings(**defaults))


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def corpus_index() -> InMemoryDocumentIndex:
    return InMemoryDocumentIndex(CORPUS)


@pytest.fixture
def container(backend, corpus_index):
    return build_container(make_settings(), backend=backend, index=corpus_index)
