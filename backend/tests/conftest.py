import asyncio
from types import SimpleNamespace
from typing import List, Optional

import pytest

from app.models.quiz_session import Question, QuizSession, Source, Syllabus
from app.utils.errors import GenerationError, SyllabusLookupError


def make_questions(count: int, correct_answer: int = 0) -> List[Question]:
    return [
        Question(
            id=f"q-{i}",
            text=f"Question {i + 1}?",
            options=["A", "B", "C", "D"],
            correct_answer=correct_answer,
            explanation=f"**Because** option {correct_answer} is right.",
        )
        for i in range(count)
    ]


def make_syllabus() -> Syllabus:
    return Syllabus(
        sections=["Security Principles", "Network Security", "Access Control"],
        sources=[Source(title="ISC2 CC Outline", uri="https://www.isc2.org/cc")],
    )


def active_session(count: int = 5, correct_answer: int = 0) -> QuizSession:
    """A session driven through the normal transitions into the active status"""
    session = QuizSession(session_id="test")
    token = session.begin_fetch("ISC2 CC")
    session.complete_fetch(token, make_syllabus())
    session.set_question_count(count)
    session.select_section("Network Security")
    token = session.begin_generation()
    session.complete_generation(token, make_questions(count, correct_answer))
    return session


class FakeSyllabusService:
    def __init__(self, syllabus: Optional[Syllabus] = None, error: Optional[Exception] = None, gate: Optional[asyncio.Event] = None):
        self.syllabus = syllabus or make_syllabus()
        self.error = error
        self.gate = gate
        self.calls = []

    async def lookup_syllabus(self, exam_name: str) -> Syllabus:
        self.calls.append(exam_name)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.syllabus


class FakeQuestionService:
    def __init__(self, error: Optional[Exception] = None, gate: Optional[asyncio.Event] = None):
        self.error = error
        self.gate = gate
        self.calls = []

    async def generate_quiz(self, exam_name: str, count: int, section: Optional[str] = None) -> List[Question]:
        self.calls.append((exam_name, count, section))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return make_questions(count)


class FakeCompletions:
    """Stands in for client.chat.completions"""

    def __init__(self, content: Optional[str] = None, annotations=None, error: Optional[Exception] = None, choices=True):
        self.content = content
        self.annotations = annotations or []
        self.error = error
        self.choices = choices
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        if not self.choices:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content, annotations=self.annotations)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions: FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def url_citation(url: str, title: str = ""):
    return SimpleNamespace(type="url_citation", url_citation=SimpleNamespace(url=url, title=title))


@pytest.fixture
def session():
    return QuizSession(session_id="test")


@pytest.fixture
def quiz():
    return active_session()
