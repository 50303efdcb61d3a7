"""Prompt builders for the tutor persona, scene captioning and enrichment."""

from __future__ import annotations

from typing import Sequence

from .models import ContextTurn, Speaker

DIFFICULTY_LABELS = {
    "elementary": "elementary school",
    "middle_school": "middle school",
    "high_school": "high school",
    "university": "university",
}

SCENE_PROMPT = (
    "Describe this scene in a simple, brief sentence to start a conversation with an "
    "English learner. Focus on the main subject or action."
)


def difficulty_label(difficulty: str) -> str:
    return DIFFICULTY_LABELS.get(difficulty, DIFFICULTY_LABELS["middle_school"])


def build_system_instruction(scene_description: str, difficulty: str, learner_language: str = "Chinese") -> str:
    level = difficulty_label(difficulty)
    return (
        f"You are a friendly and patient English speaking practice teacher for a {learner_language} "
        f"{level} student. Your goal is to help them practice English.\n"
        f'Start a conversation based on what you see in this initial scene: "{scene_description}".\n'
        "You will receive a continuous stream of updated images from the camera at roughly one frame "
        "per second. Use this live visual feed to keep the conversation dynamic and relevant to what "
        "is currently happening.\n"
        f"The student may speak or type in English or {learner_language}.\n"
        "- If they use English, continue the conversation naturally.\n"
        f"- If they use {learner_language}, understand their meaning, but gently guide them to express "
        "the same idea in English, for example by giving the English equivalent and asking a follow-up "
        "question.\n"
        f"Always keep your own responses in English. Keep your sentences clear and suitable for a {level} "
        "learner. Ask questions to encourage the student to respond."
    )


def format_history(context: Sequence[ContextTurn]) -> str:
    if not context:
        return "No history yet."
    return "\n".join(
        f"{'User' if turn.speaker is Speaker.USER else 'AI'}: {turn.text}" for turn in context
    )


def build_enrichment_prompt(
    text: str,
    context: Sequence[ContextTurn],
    *,
    difficulty: str = "middle_school",
    learner_language: str = "Chinese",
    max_words: int = 3,
) -> str:
    level = difficulty_label(difficulty)
    return (
        "You are an English learning assistant. A user is having a conversation with an AI tutor.\n"
        "Below is the recent conversation history for context:\n"
        "--- CONVERSATION HISTORY START ---\n"
        f"{format_history(context)}\n"
        "--- CONVERSATION HISTORY END ---\n\n"
        f'Now, analyze ONLY the following NEWEST message: "{text}"\n\n'
        "Based on the conversation context, your task is to:\n"
        f"1. Identify whether the NEWEST message is primarily English or {learner_language}.\n"
        "2. Translate it into the other language. The translation MUST make sense within the "
        'context of the conversation; for short phrases like "why?" or "and then?" use the context '
        "to give a meaningful translation.\n"
        f"3. If the NEWEST message is in English, pick up to {max_words} difficult words for a {level} "
        "learner and give their IPA transcription.\n\n"
        'Respond with a single JSON object with "translation" and "phonetics" keys. "phonetics" may be '
        "empty if the message is not English or has no difficult words."
    )


ENRICHMENT_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "translation": {
            "type": "STRING",
            "description": "The message translated into the other language.",
        },
        "phonetics": {
            "type": "ARRAY",
            "description": "Difficult English words with IPA transcriptions.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "word": {"type": "STRING"},
                    "ipa": {"type": "STRING"},
                },
                "required": ["word", "ipa"],
            },
        },
    },
    "required": ["translation", "phonetics"],
}
