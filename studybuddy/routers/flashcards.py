from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session, select
import structlog

from studybuddy.db import get_session
from studybuddy.middleware.rate_limit import ai_generation_limit
from studybuddy.models import Document, Flashcard
from studybuddy.schemas import SummarizeRequest, TextRequest
from studybuddy.services.llm import (
    GenerationClient,
    UpstreamFailure,
    generate_flashcards,
    generate_summary,
    get_generation_client,
)
from studybuddy.services.monitoring import record_generation

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["flashcards"])

MIN_FLASHCARD_TEXT = 50


def _card_view(card: Flashcard) -> dict:
    return {"question": card.question, "answer": card.answer, "tag": card.tag}


def _get_document(session: Session, document_id: str) -> Document:
    doc = session.exec(select(Document).where(Document.id == document_id)).first()
    if not doc:
        raise HTTPException(status_code=404, detail="PDF document not found")
    return doc


@router.post("/summarize")
@ai_generation_limit()
def summarize(request: Request, body: SummarizeRequest, client: GenerationClient = Depends(get_generation_client)):
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="text is required")
    try:
        summary = generate_summary(client, body.text, detail=body.detail)
    except UpstreamFailure as e:
        record_generation("summary", "upstream_error")
        raise HTTPException(status_code=502, detail=f"Failed to summarize: {e.message}")
    record_generation("summary", "success" if summary else "empty")
    return {"summary": summary}


@router.post("/flashcards")
@ai_generation_limit()
def flashcards_from_text(request: Request, body: TextRequest, client: GenerationClient = Depends(get_generation_client)):
    """Generate flashcards from raw text without storing them."""
    if not body.text.strip():
        raise HTTPException(status_code=400, detail="text is required")
    try:
        cards = generate_flashcards(client, body.text)
    except UpstreamFailure as e:
        record_generation("flashcards", "upstream_error")
        raise HTTPException(status_code=502, detail=f"Failed to generate flashcards: {e.message}")
    record_generation("flashcards", "success" if cards else "empty", len(cards))
    return {"flashcards": [c.to_payload() for c in cards]}


@router.get("/flashcards/pdfs")
def list_pdfs(session: Session = Depends(get_session)):
    docs = session.exec(select(Document).order_by(Document.created_at.desc())).all()
    return {
        "pdfs": [
            {"id": d.id, "filename": d.filename, "createdAt": d.created_at.isoformat()} for d in docs
        ]
    }


@router.post("/flashcards/generate/{document_id}")
@ai_generation_limit()
def generate_for_document(
    request: Request,
    document_id: str,
    session: Session = Depends(get_session),
    client: GenerationClient = Depends(get_generation_client),
):
    doc = _get_document(session, document_id)
    if not doc.text or len(doc.text.strip()) < MIN_FLASHCARD_TEXT:
        raise HTTPException(
            status_code=400,
            detail="PDF document has insufficient text content to generate flashcards",
        )

    existing = session.exec(
        select(Flashcard).where(Flashcard.document_id == document_id).order_by(Flashcard.id)
    ).all()
    if existing:
        return {
            "flashcards": [_card_view(c) for c in existing],
            "cached": True,
            "message": "Flashcards retrieved from cache",
            "filename": doc.filename,
            "documentId": doc.id,
        }

    try:
        cards = generate_flashcards(client, doc.text)
    except UpstreamFailure as e:
        record_generation("flashcards", "upstream_error")
        raise HTTPException(status_code=502, detail=f"Failed to generate flashcards: {e.message}")

    if not cards:
        record_generation("flashcards", "empty")
        raise HTTPException(
            status_code=422,
            detail="No flashcards could be generated. Please try again or check if the PDF content is sufficient.",
        )
    record_generation("flashcards", "success", len(cards))

    saved = [
        Flashcard(document_id=doc.id, question=c.question, answer=c.answer, tag=c.tag) for c in cards
    ]
    session.add_all(saved)
    session.commit()
    logger.info("flashcards_saved", document_id=doc.id, count=len(saved))

    return {
        "flashcards": [c.to_payload() for c in cards],
        "cached": False,
        "message": "Flashcards generated and saved",
        "filename": doc.filename,
        "documentId": doc.id,
    }


@router.get("/flashcards/document/{document_id}")
def flashcards_for_document(document_id: str, session: Session = Depends(get_session)):
    doc = _get_document(session, document_id)
    cards = session.exec(
        select(Flashcard).where(Flashcard.document_id == document_id).order_by(Flashcard.id)
    ).all()
    return {
        "flashcards": [_card_view(c) for c in cards],
        "documentId": doc.id,
        "filename": doc.filename,
    }
