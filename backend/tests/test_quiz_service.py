import asyncio

import pytest

from app.services.quiz_service import QuizService
from app.utils.errors import GenerationError, InvalidTransitionError, SessionNotFoundError, SyllabusLookupError
from app.utils.state_machine import QuizStatus
from conftest import FakeQuestionService, FakeSyllabusService


def _service(syllabus=None, questions=None, tick_interval=3600):
    return QuizService(
        syllabus_service=syllabus or FakeSyllabusService(),
        question_service=questions or FakeQuestionService(),
        tick_interval=tick_interval,
    )


async def _ready(service, count=5):
    session = service.create_session()
    await service.fetch_sections(session.session_id, "ISC2 CC")
    await service.set_question_count(session.session_id, count)
    await service.select_section(session.session_id, "Network Security")
    return session


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


async def test_full_flow_to_completion():
    questions = FakeQuestionService()
    service = _service(questions=questions)
    session = await _ready(service)

    await service.start_test(session.session_id)
    assert session.status == QuizStatus.ACTIVE
    assert questions.calls == [("ISC2 CC", 5, "Network Security")]

    for _ in range(5):
        await service.submit_answer(session.session_id, 0)
        await service.next_question(session.session_id)

    assert session.status == QuizStatus.COMPLETED
    assert session.percentage == 100
    await service.shutdown()


async def test_unknown_session():
    service = _service()
    with pytest.raises(SessionNotFoundError):
        await service.go_back("missing")


async def test_lookup_failure_sets_error():
    service = _service(syllabus=FakeSyllabusService(error=SyllabusLookupError("offline")))
    session = service.create_session()
    await service.fetch_sections(session.session_id, "ISC2 CC")
    assert session.status == QuizStatus.IDLE
    assert session.error == "offline"


async def test_unexpected_lookup_error_does_not_leave_session_in_flight():
    service = _service(syllabus=FakeSyllabusService(error=RuntimeError("boom")))
    session = service.create_session()
    await service.fetch_sections(session.session_id, "ISC2 CC")
    assert session.status == QuizStatus.IDLE
    assert "boom" in session.error


async def test_generation_failure_returns_to_selecting():
    service = _service(questions=FakeQuestionService(error=GenerationError("Failed to generate questions. Please try again.")))
    session = await _ready(service)
    await service.start_test(session.session_id)
    assert session.status == QuizStatus.SELECTING_SECTION
    assert session.error
    assert session.questions == []


async def test_second_fetch_rejected_while_in_flight():
    gate = asyncio.Event()
    service = _service(syllabus=FakeSyllabusService(gate=gate))
    session = service.create_session()

    first = asyncio.create_task(service.fetch_sections(session.session_id, "ISC2 CC"))
    await _settle()
    assert session.status == QuizStatus.FETCHING_SECTIONS

    with pytest.raises(InvalidTransitionError):
        await service.fetch_sections(session.session_id, "ISC2 CC")
    with pytest.raises(InvalidTransitionError):
        await service.start_test(session.session_id)

    gate.set()
    await first
    assert session.status == QuizStatus.SELECTING_SECTION


async def test_late_syllabus_after_reset_is_discarded():
    gate = asyncio.Event()
    service = _service(syllabus=FakeSyllabusService(gate=gate))
    session = service.create_session()

    pending = asyncio.create_task(service.fetch_sections(session.session_id, "ISC2 CC"))
    await _settle()
    await service.reset(session.session_id)
    gate.set()
    await pending

    assert session.status == QuizStatus.IDLE
    assert session.sections == []


async def test_late_questions_after_reset_are_discarded():
    gate = asyncio.Event()
    service = _service(questions=FakeQuestionService(gate=gate))
    session = await _ready(service)

    pending = asyncio.create_task(service.start_test(session.session_id))
    await _settle()
    assert session.status == QuizStatus.GENERATING
    await service.reset(session.session_id)
    gate.set()
    await pending

    assert session.status == QuizStatus.IDLE
    assert session.questions == []
    assert not session.timer.is_running


async def test_timer_task_ticks_and_reset_stops_it():
    service = _service(tick_interval=0.01)
    session = await _ready(service)
    await service.start_test(session.session_id)

    await asyncio.sleep(0.1)
    assert session.timer.time_remaining < 300

    await service.reset(session.session_id)
    await asyncio.sleep(0.05)
    assert session.timer.time_remaining == 0
    assert session.status == QuizStatus.IDLE


async def test_paused_timer_task_does_not_decrement():
    service = _service(tick_interval=0.01)
    session = await _ready(service)
    await service.start_test(session.session_id)
    await service.toggle_timer(session.session_id)
    remaining = session.timer.time_remaining

    await asyncio.sleep(0.05)
    assert session.timer.time_remaining == remaining
    await service.shutdown()


async def test_manual_ticks_run_out_the_clock():
    service = _service()
    session = await _ready(service)
    await service.start_test(session.session_id)

    expired = [await service.tick(session.session_id) for _ in range(301)]
    assert expired.count(True) == 1
    assert expired.index(True) == 299
    assert session.status == QuizStatus.COMPLETED
    assert session.timer.time_remaining == 0
    await service.shutdown()


async def test_delete_session():
    service = _service()
    session = service.create_session()
    await service.delete_session(session.session_id)
    with pytest.raises(SessionNotFoundError):
        service.get_session(session.session_id)


class EmptyQuestionService(FakeQuestionService):
    async def generate_quiz(self, exam_name, count, section=None):
        self.calls.append((exam_name, count, section))
        return []


async def test_empty_generation_returns_to_selecting():
    service = _service(questions=EmptyQuestionService())
    session = await _ready(service)
    await service.start_test(session.session_id)
    assert session.status == QuizStatus.SELECTING_SECTION
    assert session.error
    assert session.questions == []

    # The session is usable again without a reset
    await service.select_section(session.session_id, "Access Control")
    assert session.selected_section == "Access Control"


async def test_concurrent_deletes_only_one_wins():
    service = _service()
    session = service.create_session()
    lock = service._locks[session.session_id]

    # Both deletes get past the lookup and queue on the lock
    await lock.acquire()
    pending = asyncio.gather(
        service.delete_session(session.session_id),
        service.delete_session(session.session_id),
        return_exceptions=True,
    )
    await _settle()
    lock.release()
    results = await pending
    assert results.count(None) == 1
    assert sum(isinstance(r, SessionNotFoundError) for r in results) == 1
