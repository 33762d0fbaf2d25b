from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from studybuddy.db import get_session
from studybuddy.models import QuizAttempt
from studybuddy.schemas import QuizResult, StudyPathRequest


router = APIRouter(prefix="/api", tags=["study"])

WEAK_TOPIC_THRESHOLD = 0.6


@router.post("/study-path")
def study_path(body: StudyPathRequest):
    weak = [topic for topic, perf in body.performance.items() if perf.correct_rate < WEAK_TOPIC_THRESHOLD]
    if weak:
        recommendation = [{"topic": t, "level": "easy"} for t in weak]
    else:
        recommendation = [{"topic": "Next Chapter", "level": "medium"}]
    return {"recommendation": recommendation}


@router.get("/analytics")
def analytics(session: Session = Depends(get_session)):
    attempts = session.exec(select(QuizAttempt).order_by(QuizAttempt.at, QuizAttempt.id)).all()
    return {
        "history": [
            {
                "score": a.score,
                "total": a.total,
                "topic": a.topic,
                "timeTakenSec": a.time_taken_sec,
                "at": a.at.isoformat(),
            }
            for a in attempts
        ]
    }


@router.post("/quiz/result")
def quiz_result(body: QuizResult, session: Session = Depends(get_session)):
    session.add(QuizAttempt(score=body.score, total=body.total, topic=body.topic, time_taken_sec=body.time_taken_sec))
    session.commit()
    return {"ok": True}
