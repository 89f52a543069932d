from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.config.settings import QUIZ_CONFIG
from app.services.quiz_service import QuizService, get_quiz_service
from app.utils.errors import InvalidChoiceError, InvalidTransitionError, SessionNotFoundError

router = APIRouter()


class ExamNameRequest(BaseModel):
    exam_name: str


class SectionRequest(BaseModel):
    section: str


class QuestionCountRequest(BaseModel):
    count: int


class OptionRequest(BaseModel):
    option: int


class AnswerRequest(BaseModel):
    option: Optional[int] = None


async def _apply(action):
    """Run a service call, mapping quiz errors to HTTP errors"""
    try:
        session = await action
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidChoiceError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return session.snapshot()


def _get(service: QuizService, session_id: str):
    try:
        return service.get_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/options")
async def get_options():
    """Question-count menu and time allowance"""
    return {
        "question_counts": QUIZ_CONFIG.question_count_options,
        "default_question_count": QUIZ_CONFIG.default_question_count,
        "seconds_per_question": QUIZ_CONFIG.seconds_per_question,
    }


@router.post("/sessions")
async def create_session(service: QuizService = Depends(get_quiz_service)):
    """Start a new quiz session"""
    return service.create_session().snapshot()


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, service: QuizService = Depends(get_quiz_service)):
    """Get session details"""
    return _get(service, session_id).snapshot()


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, service: QuizService = Depends(get_quiz_service)):
    """Drop a session and stop its timer"""
    try:
        await service.delete_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"deleted": session_id}


@router.post("/sessions/{session_id}/syllabus")
async def fetch_sections(
    session_id: str, request: ExamNameRequest, service: QuizService = Depends(get_quiz_service)
):
    """Look up the exam's syllabus sections"""
    if not request.exam_name.strip():
        raise HTTPException(status_code=422, detail="Exam name is required")
    return await _apply(service.fetch_sections(session_id, request.exam_name))


@router.post("/sessions/{session_id}/section")
async def select_section(
    session_id: str, request: SectionRequest, service: QuizService = Depends(get_quiz_service)
):
    """Pick the syllabus section to be quizzed on"""
    return await _apply(service.select_section(session_id, request.section))


@router.post("/sessions/{session_id}/question-count")
async def set_question_count(
    session_id: str, request: QuestionCountRequest, service: QuizService = Depends(get_quiz_service)
):
    """Pick how many questions to generate"""
    return await _apply(service.set_question_count(session_id, request.count))


@router.post("/sessions/{session_id}/back")
async def go_back(session_id: str, service: QuizService = Depends(get_quiz_service)):
    """Return from section selection to exam-name entry"""
    return await _apply(service.go_back(session_id))


@router.post("/sessions/{session_id}/start")
async def start_test(session_id: str, service: QuizService = Depends(get_quiz_service)):
    """Generate the quiz for the selected section and start the clock"""
    return await _apply(service.start_test(session_id))


@router.post("/sessions/{session_id}/select")
async def select_option(
    session_id: str, request: OptionRequest, service: QuizService = Depends(get_quiz_service)
):
    """Select an option for the current question"""
    return await _apply(service.select_option(session_id, request.option))


@router.post("/sessions/{session_id}/answer")
async def submit_answer(
    session_id: str, request: AnswerRequest, service: QuizService = Depends(get_quiz_service)
):
    """Submit the selected (or given) option for the current question"""
    return await _apply(service.submit_answer(session_id, request.option))


@router.post("/sessions/{session_id}/next")
async def next_question(session_id: str, service: QuizService = Depends(get_quiz_service)):
    """Advance to the next question, or finish on the last one"""
    return await _apply(service.next_question(session_id))


@router.post("/sessions/{session_id}/timer/toggle")
async def toggle_timer(session_id: str, service: QuizService = Depends(get_quiz_service)):
    """Pause or resume the countdown"""
    return await _apply(service.toggle_timer(session_id))


@router.post("/sessions/{session_id}/reset")
async def reset(session_id: str, service: QuizService = Depends(get_quiz_service)):
    """Clear the session back to its initial state"""
    return await _apply(service.reset(session_id))


@router.get("/sessions/{session_id}/results")
async def get_results(session_id: str, service: QuizService = Depends(get_quiz_service)):
    """Score, percentage and per-question review"""
    return _get(service, session_id).results()
