import asyncio
import logging
import uuid
from typing import Dict, Optional

from app.config.settings import QUIZ_CONFIG
from app.models.quiz_session import QuizSession
from app.services.question_service import GENERATION_FAILED, QuestionService
from app.services.syllabus_service import SyllabusService
from app.utils.errors import GenerationError, SessionNotFoundError, SyllabusLookupError
from app.utils.state_machine import QuizStatus

logger = logging.getLogger(__name__)


class QuizService:
    """
    Registry of quiz sessions and the only writer to them.

    Every mutation of a session happens under that session's lock, so a
    timer tick can never interleave with an answer submission. External
    calls are awaited outside the lock; their results are applied only if
    the session's generation token still matches the one handed out when
    the call began, which discards results that arrive after a reset.
    """

    def __init__(
        self,
        syllabus_service: Optional[SyllabusService] = None,
        question_service: Optional[QuestionService] = None,
        tick_interval: Optional[float] = None,
    ):
        self.syllabus_service = syllabus_service or SyllabusService()
        self.question_service = question_service or QuestionService()
        self.tick_interval = QUIZ_CONFIG.tick_interval if tick_interval is None else tick_interval

        self.sessions: Dict[str, QuizSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._timer_tasks: Dict[str, asyncio.Task] = {}

    def create_session(self) -> QuizSession:
        """Create a new quiz session"""
        session_id = str(uuid.uuid4())
        session = QuizSession(session_id=session_id)
        self.sessions[session_id] = session
        self._locks[session_id] = asyncio.Lock()
        logger.info("Created quiz session %s", session_id)
        return session

    def get_session(self, session_id: str) -> QuizSession:
        """Get session by ID"""
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    async def delete_session(self, session_id: str):
        session = self.get_session(session_id)
        async with self._locks[session_id]:
            # A concurrent delete may have won the lock first
            if self.sessions.get(session_id) is not session:
                raise SessionNotFoundError(f"Session {session_id} not found")
            self._cancel_timer(session_id)
            session.reset()
            del self.sessions[session_id]
            del self._locks[session_id]
        logger.info("Deleted quiz session %s", session_id)

    async def fetch_sections(self, session_id: str, exam_name: str) -> QuizSession:
        """idle -> fetching_sections -> selecting_section (or back to idle)"""
        session = self.get_session(session_id)
        lock = self._locks[session_id]

        async with lock:
            token = session.begin_fetch(exam_name)
            if token is None:
                return session
            exam_name = session.exam_name
        logger.info("Session %s fetching sections for %r", session_id, exam_name)

        try:
            syllabus = await self.syllabus_service.lookup_syllabus(exam_name)
        except SyllabusLookupError as e:
            async with lock:
                if not session.fail_fetch(token, str(e)):
                    logger.info("Discarding stale lookup failure for session %s", session_id)
            return session
        except Exception as e:
            logger.exception("Unexpected syllabus lookup error for session %s", session_id)
            async with lock:
                session.fail_fetch(token, f"Could not fetch the syllabus: {e}")
            return session

        async with lock:
            if session.complete_fetch(token, syllabus):
                logger.info(
                    "Session %s got %d sections, %d sources",
                    session_id,
                    len(syllabus.sections),
                    len(syllabus.sources),
                )
            else:
                logger.info("Discarding stale syllabus for session %s", session_id)
        return session

    async def select_section(self, session_id: str, section: str) -> QuizSession:
        session = self.get_session(session_id)
        async with self._locks[session_id]:
            session.select_section(section)
        return session

    async def set_question_count(self, session_id: str, count: int) -> QuizSession:
        session = self.get_session(session_id)
        async with self._locks[session_id]:
            session.set_question_count(count)
        return session

    async def go_back(self, session_id: str) -> QuizSession:
        session = self.get_session(session_id)
        async with self._locks[session_id]:
            session.go_back()
        return session

    async def start_test(self, session_id: str) -> QuizSession:
        """selecting_section -> generating -> active (or back to selecting_section)"""
        session = self.get_session(session_id)
        lock = self._locks[session_id]

        async with lock:
            token = session.begin_generation()
            if token is None:
                return session
            exam_name = session.exam_name
            section = session.selected_section
            count = session.question_count
        logger.info("Session %s generating %d questions for %r", session_id, count, section)

        try:
            questions = await self.question_service.generate_quiz(exam_name, count, section)
        except GenerationError as e:
            async with lock:
                if not session.fail_generation(token, str(e)):
                    logger.info("Discarding stale generation failure for session %s", session_id)
            return session
        except Exception:
            logger.exception("Unexpected generation error for session %s", session_id)
            async with lock:
                session.fail_generation(token, GENERATION_FAILED)
            return session

        async with lock:
            if not questions:
                logger.warning("Session %s got no questions", session_id)
                session.fail_generation(token, GENERATION_FAILED)
            elif session.complete_generation(token, questions):
                self._start_timer(session_id, session)
                logger.info(
                    "Session %s active with %d questions, %ss on the clock",
                    session_id,
                    len(questions),
                    session.timer.time_remaining,
                )
            else:
                logger.info("Discarding stale questions for session %s", session_id)
        return session

    async def select_option(self, session_id: str, option: int) -> QuizSession:
        session = self.get_session(session_id)
        async with self._locks[session_id]:
            session.select_option(option)
        return session

    async def submit_answer(self, session_id: str, option: Optional[int] = None) -> QuizSession:
        session = self.get_session(session_id)
        async with self._locks[session_id]:
            session.submit_answer(option)
        return session

    async def next_question(self, session_id: str) -> QuizSession:
        session = self.get_session(session_id)
        async with self._locks[session_id]:
            session.next_question()
            if session.status == QuizStatus.COMPLETED:
                self._cancel_timer(session_id)
                logger.info("Session %s completed with score %d", session_id, session.score)
        return session

    async def toggle_timer(self, session_id: str) -> QuizSession:
        session = self.get_session(session_id)
        async with self._locks[session_id]:
            running = session.toggle_timer()
        logger.info("Session %s timer %s", session_id, "resumed" if running else "paused")
        return session

    async def tick(self, session_id: str) -> bool:
        """Apply one timer tick. Returns True if time ran out on this tick."""
        session = self.get_session(session_id)
        async with self._locks[session_id]:
            expired = session.tick()
        if expired:
            logger.info("Session %s ran out of time with score %d", session_id, session.score)
        return expired

    async def reset(self, session_id: str) -> QuizSession:
        session = self.get_session(session_id)
        async with self._locks[session_id]:
            self._cancel_timer(session_id)
            session.reset()
        logger.info("Session %s reset", session_id)
        return session

    async def shutdown(self):
        for session_id in list(self._timer_tasks):
            self._cancel_timer(session_id)

    def _start_timer(self, session_id: str, session: QuizSession):
        self._cancel_timer(session_id)
        self._timer_tasks[session_id] = asyncio.create_task(
            self._run_timer(session_id, session, session.generation_token)
        )

    def _cancel_timer(self, session_id: str):
        task = self._timer_tasks.pop(session_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _run_timer(self, session_id: str, session: QuizSession, token: int):
        """Tick once per interval until the quiz this task was started for ends"""
        lock = self._locks[session_id]
        try:
            while True:
                await asyncio.sleep(self.tick_interval)
                async with lock:
                    if session.generation_token != token or session.status != QuizStatus.ACTIVE:
                        break
                    expired = session.tick()
                if expired:
                    logger.info("Session %s ran out of time with score %d", session_id, session.score)
                    break
        finally:
            if self._timer_tasks.get(session_id) is asyncio.current_task():
                del self._timer_tasks[session_id]


quiz_service = QuizService()


def get_quiz_service() -> QuizService:
    return quiz_service
