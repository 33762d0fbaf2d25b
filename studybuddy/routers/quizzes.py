from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session, select
import structlog

from studybuddy.db import get_session
from studybuddy.middleware.rate_limit import ai_generation_limit
from studybuddy.models import Document, Quiz, QuizAttempt
from studybuddy.schemas import QuizFromDocumentRequest, QuizRequest, QuizSubmission
from studybuddy.services.llm import GenerationClient, UpstreamFailure, generate_quiz, get_generation_client
from studybuddy.services.monitoring import record_generation
from studybuddy.services.normalizer import QuizItemRecord, normalize_quiz_items

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["quizzes"])

MIN_QUIZ_TEXT = 100
SOURCE_PREVIEW_CHARS = 1000


def _quiz_view(quiz: Quiz, document: Optional[Document] = None) -> dict:
    # Stored items go back through the normalizer so both answer forms agree
    questions = [q.to_payload() for q in normalize_quiz_items(quiz.questions)]
    if document is not None:
        description = f"Quiz generated from {document.filename}"
    else:
        description = f"Quiz generated from {(quiz.source_text or '')[:50]}..."
    return {
        "id": str(quiz.id),
        "title": quiz.topic or (f"Quiz from {document.filename}" if document else "Untitled Quiz"),
        "subject": "General",
        "difficulty": "Medium",
        "questionCount": len(questions),
        "timeLimit": 15,
        "description": description,
        "questions": questions,
        "documentId": quiz.document_id,
        "documentName": document.filename if document else None,
    }


def _run_generation(client: GenerationClient, text: str, num_questions: int) -> List[QuizItemRecord]:
    try:
        items = generate_quiz(client, text, num_questions=num_questions)
    except UpstreamFailure as e:
        record_generation("quiz", "upstream_error")
        raise HTTPException(status_code=502, detail=f"Failed to generate quiz: {e.message}")
    if not items:
        record_generation("quiz", "empty")
        raise HTTPException(
            status_code=422,
            detail="No questions could be generated from this content. Try another file or paste text directly.",
        )
    record_generation("quiz", "success", len(items))
    return items


@router.post("/quiz")
@ai_generation_limit()
def quiz_from_text(request: Request, body: QuizRequest, session: Session = Depends(get_session),
                   client: GenerationClient = Depends(get_generation_client)):
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="text is required")
    items = _run_generation(client, body.text, body.num_questions)
    payload = [q.to_payload() for q in items]
    quiz = Quiz(questions=payload, source_text=body.text, topic="Generated Quiz")
    session.add(quiz)
    session.commit()
    session.refresh(quiz)
    return {"quiz": payload, "id": str(quiz.id), "cached": False}


@router.post("/quizzes/generate/{document_id}")
@ai_generation_limit()
def quiz_from_document(request: Request, document_id: str, body: Optional[QuizFromDocumentRequest] = None,
                       session: Session = Depends(get_session),
                       client: GenerationClient = Depends(get_generation_client)):
    body = body or QuizFromDocumentRequest()
    doc = session.get(Document, document_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Document not found")
    text = (doc.text or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Document has no extractable text")
    if len(text) < MIN_QUIZ_TEXT:
        raise HTTPException(
            status_code=400,
            detail="Document text is too short to generate meaningful questions.",
        )

    if not body.regenerate:
        candidates = session.exec(
            select(Quiz).where(Quiz.document_id == doc.id).order_by(Quiz.created_at.desc(), Quiz.id.desc())
        ).all()
        existing = next((q for q in candidates if q.questions), None)
        if existing is not None:
            logger.info("quiz_cache_hit", document_id=doc.id, quiz_id=existing.id)
            return {"quiz": _quiz_view(existing, doc), "id": str(existing.id), "cached": True}

    logger.info("quiz_generation_started", document_id=doc.id, text_length=len(text))
    items = _run_generation(client, doc.text, body.num_questions)
    quiz = Quiz(
        questions=[q.to_payload() for q in items],
        source_text=doc.text[:SOURCE_PREVIEW_CHARS],
        document_id=doc.id,
        topic=f"Quiz from {doc.filename}",
    )
    session.add(quiz)
    session.commit()
    session.refresh(quiz)
    return {"quiz": _quiz_view(quiz, doc), "id": str(quiz.id), "cached": False}


@router.get("/quizzes")
def list_quizzes(session: Session = Depends(get_session)):
    quizzes = session.exec(select(Quiz).order_by(Quiz.created_at.desc(), Quiz.id.desc()).limit(50)).all()
    doc_ids = {q.document_id for q in quizzes if q.document_id}
    documents = {}
    if doc_ids:
        documents = {d.id: d for d in session.exec(select(Document).where(Document.id.in_(list(doc_ids)))).all()}
    return {"quizzes": [_quiz_view(q, documents.get(q.document_id)) for q in quizzes]}


@router.get("/quizzes/{quiz_id}")
def get_quiz(quiz_id: int, session: Session = Depends(get_session)):
    quiz = session.get(Quiz, quiz_id)
    if not quiz:
        raise HTTPException(status_code=404, detail="Quiz not found")
    document = session.get(Document, quiz.document_id) if quiz.document_id else None
    return {"quiz": _quiz_view(quiz, document)}


@router.post("/quizzes/{quiz_id}/submit")
def submit_quiz(quiz_id: int, body: QuizSubmission, session: Session = Depends(get_session)):
    quiz = session.get(Quiz, quiz_id)
    if not quiz:
        raise HTTPException(status_code=404, detail="Quiz not found")
    attempt = QuizAttempt(
        score=body.score,
        total=body.total,
        topic=quiz.topic or "Quiz",
        time_taken_sec=body.time_taken_sec,
    )
    session.add(attempt)
    session.commit()
    return {"success": True, "score": body.score, "total": body.total}
