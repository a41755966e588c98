from __future__ import annotations

import json
from typing import Optional

from ..domain.session_models import ConversationContext

COURSEBOT_SYSTEM_PROMPT = """You are CourseBot, an expert AI assistant specializing in helping users brainstorm and develop course creation ideas. Your role is to guide users through the process of identifying their unique value proposition and creating compelling online courses.

CORE RESPONSIBILITIES:
1. Help users identify their skills, expertise, and unique value
2. Suggest specific course ideas based on their background and goals
3. Provide detailed course outlines and learning objectives
4. Guide users through market research and audience identification
5. Offer practical advice on course structure and delivery methods

CONVERSATION APPROACH:
- Ask probing questions to understand the user's expertise and goals
- Provide 2-3 specific course ideas with brief outlines when appropriate
- Always ask follow-up questions to dive deeper
- Be encouraging and supportive while maintaining professionalism
- Focus on actionable, practical advice

RESPONSE STYLE:
- Conversational and engaging
- Professional yet friendly
- Specific and actionable"""


def build_system_prompt(context: Optional[ConversationContext] = None) -> str:
    if context is None:
        return COURSEBOT_SYSTEM_PROMPT
    topics = ", ".join(context.identified_topics) or "None"
    lines = [
        COURSEBOT_SYSTEM_PROMPT,
        "",
        f"CONVERSATION STAGE: {context.conversation_stage}",
        f"PREVIOUSLY IDENTIFIED TOPICS: {topics}",
    ]
    profile = context.user_profile
    if profile is not None:
        lines += [
            "",
            "USER CONTEXT:",
            f"- Skills: {', '.join(profile.skills) or 'Not specified'}",
            f"- Experience: {profile.experience or 'Not specified'}",
            f"- Industry: {profile.industry or 'Not specified'}",
            f"- Goals: {', '.join(profile.goals) or 'Not specified'}",
            "",
            "Use this context to provide more personalized and relevant suggestions.",
        ]
    return "\n".join(lines)


def intent_prompt(user_input: str) -> str:
    return f"""Analyze the following user input for course brainstorming:

User Input: {json.dumps(user_input)}

Provide a JSON object with:
1. intent: the user's primary intention, one of "explore_topics", "get_course_ideas", "validate_idea", "learn_more", "general_inquiry"
2. entities: relevant entities found (skills, industries, tools, ...)
3. sentiment: "positive", "negative" or "neutral"
4. topics: relevant topics or themes mentioned, as short lowercase phrases

Format:
{{"intent": "string", "entities": [{{"type": "string", "value": "string", "confidence": 0.0}}], "sentiment": "neutral", "topics": ["string"]}}

Respond only with the JSON object."""


def ideas_prompt(user_input: str, context: Optional[ConversationContext] = None) -> str:
    profile = ""
    if context is not None and context.user_profile is not None:
        profile = f"\nUser Context: {context.user_profile.model_dump_json()}\n"
    return f"""Based on the following user input, generate 3 specific course ideas.

User Input: {json.dumps(user_input)}
{profile}
Format your response as a JSON array:
[
  {{
    "title": "Course Title",
    "description": "Course description",
    "target_audience": "Specific target audience",
    "difficulty_level": "beginner|intermediate|advanced",
    "estimated_duration": "Duration estimate",
    "key_topics": ["Topic 1", "Topic 2", "Topic 3"],
    "market_potential": "low|medium|high",
    "prerequisites": ["Prerequisite 1"]
  }}
]

Respond only with the JSON array, no additional text."""


def suggestions_prompt(context: ConversationContext, last_message: Optional[str]) -> str:
    profile = context.user_profile.model_dump_json() if context.user_profile else "{}"
    return f"""Based on the current conversation context, suggest 3-5 follow-up questions or prompts that would help the user further develop their course idea.

Context:
- Conversation Stage: {context.conversation_stage}
- Identified Topics: {', '.join(context.identified_topics)}
- User Profile: {profile}
- Last Message: {json.dumps(last_message or 'Not provided')}

Format as a JSON array of strings. Respond only with the JSON array."""


def outline_prompt(course_topic: str) -> str:
    return f"""Design a course outline for the subject: {json.dumps(course_topic)}

Return a JSON object:
{{
  "title": "string",
  "description": "string",
  "target_audience": "string",
  "prerequisites": ["string"],
  "total_duration": "string",
  "parts": [
    {{"part_number": 1, "title": "string", "description": "string", "learning_goals": ["string"], "lessons": []}}
  ]
}}

Use 3 to 5 parts. Respond only with the JSON object."""


def lessons_prompt(course_title: str, part_title: str, part_description: str) -> str:
    return f"""Course: {json.dumps(course_title)}
Part: {json.dumps(part_title)} - {part_description}

List 3 to 5 lessons for this part as a JSON array:
[{{"lesson_number": 1, "title": "string", "description": "string"}}]

Respond only with the JSON array."""
