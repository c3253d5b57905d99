"""Prompt templates for feeding an extracted text artifact back into a chat."""

from __future__ import annotations

from enum import Enum


class PromptTemplate(Enum):
    SUMMARIZE = "summarize"
    KEY_POINTS = "key_points"
    QUESTION = "question"


_TEMPLATES = {
    PromptTemplate.SUMMARIZE: (
        "Please analyze this YouTube video transcript and provide a comprehensive "
        "summary of the main points and key takeaways:\n\n{artifact}"
    ),
    PromptTemplate.KEY_POINTS: (
        "Please analyze this YouTube video transcript and list the most important "
        "key points discussed:\n\n{artifact}"
    ),
    PromptTemplate.QUESTION: (
        "Based on this YouTube video transcript:\n\n{artifact}\n\n"
        "Please answer the following: {question}"
    ),
}


def render_prompt(
    template: PromptTemplate, artifact: str, question: str | None = None
) -> str:
    """Fill a template with an artifact (and the user's question for QUESTION).

    Raises:
        ValueError: If the artifact is empty, or QUESTION is used without a question.
    """
    if not artifact.strip():
        raise ValueError("artifact must not be empty")
    if template is PromptTemplate.QUESTION and not (question and question.strip()):
        raise ValueError("question template requires a non-empty question")
    return _TEMPLATES[template].format(artifact=artifact, question=question or "")
