"""Prompt construction for enhancement and refinement requests."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from .models import AISuggestion, EnhancementOptions
from .providers.types import Message

BASE_SYSTEM_PROMPT = """You are an expert resume enhancement AI. Your task is to improve resume content while maintaining accuracy and authenticity.

Rules:
1. NEVER fabricate experience, skills, or achievements
2. Only enhance existing content - don't add new roles or experiences
3. Improve clarity, impact, and ATS compatibility
4. Use action verbs and quantify achievements where possible
5. Return valid JSON with the specified structure"""

LEVEL_GUIDANCE: Dict[str, str] = {
    "light": "Focus on grammar, clarity, and minor wording improvements.",
    "moderate": "Enhance impact, add relevant keywords, and improve structure.",
    "comprehensive": "Comprehensive optimization for ATS, impact, and professional presentation.",
}

RESPONSE_FORMAT = """Return a JSON object with:
{
  "enhancedData": <enhanced resume data>,
  "suggestions": [
    {
      "field": "path into the resume data, e.g. personal.summary or experience[0].bulletPoints[1].text",
      "section": "resume section",
      "originalValue": "original text",
      "suggestedValue": "enhanced text",
      "reasoning": "why this change improves the resume",
      "confidence": 0.95,
      "type": "improvement | correction | enhancement | addition"
    }
  ],
  "confidence": 0.9
}"""


def system_prompt(enhancement_level: str) -> str:
    guidance = LEVEL_GUIDANCE.get(enhancement_level, LEVEL_GUIDANCE["moderate"])
    return f"{BASE_SYSTEM_PROMPT}\n\nEnhancement Level: {guidance}"


def user_prompt(
    options: EnhancementOptions,
    original_text: str,
    parsed_data: Dict[str, Any],
    user_instructions: Optional[str] = None,
) -> str:
    prompt = "Please enhance this resume data:\n\n" + json.dumps(parsed_data, indent=2, ensure_ascii=False)

    if original_text:
        prompt += f"\n\nOriginal Resume Text:\n{original_text}"
    if options.job_description:
        prompt += f"\n\nTarget Job Description:\n{options.job_description}"
    if user_instructions:
        prompt += f"\n\nSpecial Instructions:\n{user_instructions}"
    if options.focus_areas:
        prompt += f"\n\nFocus Areas: {', '.join(options.focus_areas)}"

    return f"{prompt}\n\n{RESPONSE_FORMAT}"


def build_enhancement_messages(
    options: EnhancementOptions,
    original_text: str,
    parsed_data: Dict[str, Any],
    user_instructions: Optional[str] = None,
) -> List[Message]:
    """One user turn: system rules first, then the request itself.

    Not every provider accepts a system role, so the rules ride in the user
    message for all of them.
    """
    content = (
        system_prompt(options.enhancement_level)
        + "\n\n"
        + user_prompt(options, original_text, parsed_data, user_instructions)
    )
    return [Message.user(content)]


def build_refinement_messages(
    previous_messages: List[Message],
    previous_suggestions: List[AISuggestion],
    instructions: str,
) -> List[Message]:
    prior = json.dumps(
        {"suggestions": [_suggestion_for_prompt(item) for item in previous_suggestions]},
        indent=2,
        ensure_ascii=False,
    )
    refinement = (
        "Refine the suggestions above according to these instructions:\n"
        f"{instructions}\n\n"
        "Keep the same rules and answer with the complete JSON object again.\n\n"
        f"{RESPONSE_FORMAT}"
    )
    return [*previous_messages, Message.assistant(prior), Message.user(refinement)]


def _suggestion_for_prompt(suggestion: AISuggestion) -> Dict[str, Any]:
    return {
        "field": suggestion.field,
        "section": suggestion.section,
        "originalValue": suggestion.original_value,
        "suggestedValue": suggestion.suggested_value,
        "reasoning": suggestion.reasoning,
        "confidence": suggestion.confidence,
        "type": suggestion.type,
    }
