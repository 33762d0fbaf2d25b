from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session, select
import structlog

from studybuddy.db import get_session
from studybuddy.middleware.rate_limit import ai_generation_limit
from studybuddy.models import Doubt
from studybuddy.schemas import DoubtRequest, SolveRequest
from studybuddy.services.llm import GenerationClient, UpstreamFailure, get_generation_client, solve_text
from studybuddy.services.monitoring import record_generation
from studybuddy.services.ocr import OcrUnavailable, extract_text_from_image

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["doubts"])


def _question_text(body: SolveRequest) -> str:
    """Resolve the question from OCR when an image is supplied, else from text."""
    if not body.image_base64 and not (body.text or "").strip():
        raise HTTPException(status_code=400, detail="imageBase64 or text is required")
    if body.image_base64:
        try:
            extracted = extract_text_from_image(body.image_base64)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except OcrUnavailable as e:
            record_generation("ocr", "upstream_error")
            raise HTTPException(status_code=502, detail=str(e))
        if extracted:
            return extracted
        logger.warning("ocr_returned_no_text")
    question = (body.text or "").strip()
    if not question:
        raise HTTPException(status_code=422, detail="No text could be read from the image")
    return question


def _solve(client: GenerationClient, question: str) -> str:
    try:
        solution = solve_text(client, question)
    except UpstreamFailure as e:
        record_generation("solve", "upstream_error")
        raise HTTPException(status_code=502, detail=f"Failed to solve question: {e.message}")
    record_generation("solve", "success" if solution else "empty")
    return solution


@router.post("/solve")
@ai_generation_limit()
def solve(request: Request, body: SolveRequest, client: GenerationClient = Depends(get_generation_client)):
    question = _question_text(body)
    return {"solution": _solve(client, question), "extractedText": question}


@router.post("/ai/doubt")
@ai_generation_limit()
def ask_doubt(request: Request, body: DoubtRequest, session: Session = Depends(get_session),
              client: GenerationClient = Depends(get_generation_client)):
    question = _question_text(body)
    solution = _solve(client, question)
    doubt = Doubt(question=question, answer=solution, subject=body.subject, image_base64=body.image_base64)
    session.add(doubt)
    session.commit()
    session.refresh(doubt)
    return {"solution": solution, "answer": solution, "extractedText": question, "id": str(doubt.id)}


@router.get("/study/doubts")
def list_doubts(session: Session = Depends(get_session)):
    doubts = session.exec(select(Doubt).order_by(Doubt.created_at.desc(), Doubt.id.desc()).limit(50)).all()
    return {
        "doubts": [
            {
                "id": str(d.id),
                "question": d.question,
                "answer": d.answer,
                "subject": d.subject,
                "createdAt": d.created_at.isoformat(),
            }
            for d in doubts
        ]
    }
