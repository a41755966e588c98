from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


ConversationStage = Literal["discovery", "ideation", "planning", "validation"]
Role = Literal["system", "user", "assistant"]
Sentiment = Literal["positive", "negative", "neutral"]


class UserProfile(BaseModel):
    skills: List[str] = Field(default_factory=list)
    experience: Optional[str] = None
    industry: Optional[str] = None
    goals: List[str] = Field(default_factory=list)


class CourseIdea(BaseModel):
    title: str
    description: str
    target_audience: str
    difficulty_level: Literal["beginner", "intermediate", "advanced"]
    estimated_duration: str
    key_topics: List[str] = Field(default_factory=list)
    market_potential: Literal["low", "medium", "high"]
    prerequisites: List[str] = Field(default_factory=list)


class ConversationContext(BaseModel):
    conversation_stage: ConversationStage = "discovery"
    identified_topics: List[str] = Field(default_factory=list)
    suggested_courses: List[CourseIdea] = Field(default_factory=list)
    user_profile: Optional[UserProfile] = None


class ContextUpdate(BaseModel):
    """Partial context supplied by a caller; unset fields are left untouched."""

    conversation_stage: Optional[ConversationStage] = None
    identified_topics: Optional[List[str]] = None
    suggested_courses: Optional[List[CourseIdea]] = None
    user_profile: Optional[UserProfile] = None


class Turn(BaseModel):
    role: Role
    content: str
    timestamp: datetime
    metadata: Optional[Dict[str, Any]] = None


class ConversationSession(BaseModel):
    session_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    context: ConversationContext = Field(default_factory=ConversationContext)
    history: List[Turn] = Field(default_factory=list)
    message_count: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime
    last_activity: datetime


class SessionSummary(BaseModel):
    session_id: str
    user_id: Optional[str] = None
    conversation_stage: ConversationStage
    identified_topics: List[str]
    suggested_courses_count: int
    last_activity: datetime
    message_count: int


class SessionStats(BaseModel):
    message_count: int
    duration_seconds: float
    duration_minutes: int
    conversation_stage: ConversationStage
    identified_topics_count: int
    suggested_courses_count: int


class Entity(BaseModel):
    type: str
    value: str
    confidence: float = 0.0


class IntentAnalysis(BaseModel):
    intent: str
    entities: List[Entity] = Field(default_factory=list)
    sentiment: Sentiment = "neutral"
    topics: List[str] = Field(default_factory=list)


# --- API payloads ---


class SessionCreate(BaseModel):
    session_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    initial_context: Optional[ContextUpdate] = None


class SessionImport(BaseModel):
    session: ConversationSession


class ChatTurnRequest(BaseModel):
    session_id: str = Field(min_length=1)
    message: str = Field(min_length=1)
    user_id: Optional[str] = None
    generate_ideas: bool = False


class ChatTurnResult(BaseModel):
    session_id: str
    reply: str
    analysis: IntentAnalysis
    course_ideas: Optional[List[CourseIdea]] = None
    context: ConversationContext


class IdeasRequest(BaseModel):
    user_input: str = Field(min_length=1)
    session_id: Optional[str] = None


class AnalyzeRequest(BaseModel):
    user_input: str = Field(min_length=1)


class SuggestionsRequest(BaseModel):
    session_id: str = Field(min_length=1)
    last_message: Optional[str] = None
