from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SummarizeRequest(_Body):
    text: str = ""
    detail: str = "medium"


class TextRequest(_Body):
    text: str = ""


class QuizRequest(_Body):
    text: str = ""
    num_questions: int = Field(default=10, ge=1, le=50, alias="numQuestions")


class QuizFromDocumentRequest(_Body):
    num_questions: int = Field(default=10, ge=1, le=50, alias="numQuestions")
    regenerate: bool = False


class QuizSubmission(_Body):
    score: int
    total: int
    answers: Optional[list] = None
    time_taken_sec: int = Field(default=0, alias="timeTakenSec")


class QuizResult(_Body):
    score: int
    total: int
    topic: str = "Quiz"
    time_taken_sec: int = Field(default=0, alias="timeTakenSec")


class SolveRequest(_Body):
    image_base64: Optional[str] = Field(default=None, alias="imageBase64")
    text: Optional[str] = None


class DoubtRequest(SolveRequest):
    subject: str = "general"


class TopicPerformance(_Body):
    correct_rate: float = Field(alias="correctRate")


class StudyPathRequest(_Body):
    performance: Dict[str, TopicPerformance] = Field(default_factory=dict)
