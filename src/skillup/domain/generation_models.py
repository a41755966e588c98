from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import AliasChoices, BaseModel, Field


FrameType = Literal["log", "progress", "success", "error", "job_complete"]
JobState = Literal["running", "succeeded", "failed"]


class Frame(BaseModel):
    type: FrameType
    message: str
    data: Optional[Dict[str, Any]] = None
    timestamp: str
    seq: int = 0


class GenerationRequest(BaseModel):
    course_topic: str = Field(min_length=1, validation_alias=AliasChoices("course_topic", "topic"))
    search_web: bool = False
    user_id: Optional[str] = None


class GenerationStarted(BaseModel):
    job_id: str
    status: JobState = "running"


class JobStatus(BaseModel):
    job_id: str
    status: JobState
    last_frame: Optional[Frame] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime
    finished_at: Optional[datetime] = None


# --- course structure produced by the generation workflow ---


class CourseLesson(BaseModel):
    lesson_number: int
    title: str
    description: str


class CoursePart(BaseModel):
    part_number: int
    title: str
    description: str
    learning_goals: List[str] = Field(default_factory=list)
    lessons: List[CourseLesson] = Field(default_factory=list)


class CourseStructure(BaseModel):
    title: str
    description: str
    target_audience: str
    prerequisites: List[str] = Field(default_factory=list)
    total_duration: str
    parts: List[CoursePart] = Field(default_factory=list)
