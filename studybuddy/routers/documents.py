from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy import delete
from sqlmodel import Session, select
import structlog

from studybuddy.db import get_session
from studybuddy.models import Document, Flashcard
from studybuddy.services.pdf import extract_text_from_pdf, remove_upload, store_upload

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["documents"])


@router.post("/pdf/upload")
async def upload_pdf(pdf: UploadFile = File(...), session: Session = Depends(get_session)):
    content = await pdf.read()
    if not content:
        raise HTTPException(status_code=400, detail="PDF file is required")
    try:
        text = extract_text_from_pdf(content)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    stored_path = store_upload(pdf.filename, content)
    doc = Document(filename=pdf.filename or "upload.pdf", stored_path=stored_path, text=text)
    session.add(doc)
    session.commit()
    session.refresh(doc)
    logger.info("document_uploaded", document_id=doc.id, filename=doc.filename, chars=len(text))
    return {"id": doc.id, "filename": doc.filename, "text": doc.text}


@router.get("/pdf")
def list_documents(session: Session = Depends(get_session)):
    docs = session.exec(select(Document).order_by(Document.created_at.desc())).all()
    return {
        "items": [
            {"id": d.id, "filename": d.filename, "createdAt": d.created_at.isoformat()} for d in docs
        ]
    }


@router.get("/pdf/{document_id}")
def get_document(document_id: str, session: Session = Depends(get_session)):
    doc = session.get(Document, document_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Not found")
    return {"id": doc.id, "filename": doc.filename, "text": doc.text}


@router.delete("/pdf/{document_id}")
def delete_document(document_id: str, session: Session = Depends(get_session)):
    doc = session.get(Document, document_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Document not found")
    # The stored file is best effort; the record goes regardless
    remove_upload(doc.stored_path)
    session.execute(delete(Flashcard).where(Flashcard.document_id == document_id))
    session.delete(doc)
    session.commit()
    logger.info("document_deleted", document_id=document_id)
    return {"message": "Document deleted successfully", "id": document_id}
