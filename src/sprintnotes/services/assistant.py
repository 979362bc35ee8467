"""AI helpers for notes and lectures: summaries, descriptions, translations."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from tenacity import retry, stop_after_attempt, wait_exponential

from sprintnotes.models.lecture import GlossaryTerm, LectureNote
from sprintnotes.services.llm import LanguageModel, extract_json

logger = logging.getLogger(__name__)

DESCRIPTION_INPUT_LIMIT = 500


@dataclass
class LectureTranslation:
    """Comprehension aids produced for a lecture transcript."""

    simplified_english: str
    translated_version: str
    glossary: list[GlossaryTerm] = field(default_factory=list)
    key_points: list[str] = field(default_factory=list)

    def apply_to(self, lecture: LectureNote) -> LectureNote:
        """Copy the aids onto a lecture note."""
        lecture.simplified_english = self.simplified_english
        lecture.translated_version = self.translated_version
        lecture.glossary = list(self.glossary)
        lecture.key_points = list(self.key_points)
        return lecture


class AssistantService:
    """Prompts a language model on behalf of the note editor."""

    def __init__(self, llm: LanguageModel):
        """Initialize the assistant.

        Args:
            llm: Backend exposing ``generate(prompt, system=None)``
        """
        self.llm = llm

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
    )
    def _complete(self, prompt: str, system: Optional[str] = None) -> str:
        return self.llm.generate(prompt, system=system)

    def summarize(self, content: str) -> str:
        """Summarize note content.

        Raises:
            ValueError: If content is empty
        """
        if not content:
            raise ValueError("No content provided")

        prompt = (
            "Please provide a concise summary of the following notes. "
            "Focus on the key points and main ideas. "
            "Format the summary in a clear, organized way:\n\n"
            f"{content}"
        )
        return self._complete(prompt)

    def generate_description(self, content: str) -> str:
        """One-sentence description of a note, or "" when none can be made."""
        if not content:
            return ""

        prompt = (
            "Generate a very brief 1-sentence description (max 10-15 words) of the "
            "following note content. Be concise and focus on the main topic:\n\n"
            f"{content[:DESCRIPTION_INPUT_LIMIT]}"
        )
        try:
            return self._complete(prompt).strip().strip('"')
        except Exception as e:
            logger.warning("Description generation failed: %s", e)
            return ""

    def translate_lecture(
        self,
        transcript: str,
        original_language: str,
        target_language: str,
    ) -> LectureTranslation:
        """Simplify, translate and annotate a lecture transcript.

        Args:
            transcript: Lecture text in the original language
            original_language: Language of the transcript
            target_language: Language to translate into

        Returns:
            Parsed translation with glossary and key points

        Raises:
            ValueError: If the transcript is empty or the reply holds no JSON object
        """
        if not transcript:
            raise ValueError("No transcript provided")

        prompt = f"""You are a language learning assistant helping students understand lectures in foreign languages.

Given this lecture transcript in {original_language}:

{transcript}

Please provide:
1. A simplified English version that maintains the key concepts but uses simpler vocabulary and shorter sentences
2. A complete translation to {target_language}
3. A glossary of 10-15 important technical or difficult terms with definitions
4. 5-7 key points summarizing the main concepts

Format your response as JSON with this structure:
{{
  "simplifiedEnglish": "...",
  "translatedVersion": "...",
  "glossary": [
    {{
      "term": "photosynthesis",
      "definition": "The process plants use to convert sunlight into chemical energy",
      "context": "Example sentence showing usage"
    }}
  ],
  "keyPoints": [
    "First main concept...",
    "Second main concept..."
  ]
}}"""

        system = "Always respond with valid JSON only, no markdown or explanation."
        return self._parse_translation(self._complete(prompt, system=system))

    def _parse_translation(self, response_text: str) -> LectureTranslation:
        """Extract the translation object from a model reply."""
        data: dict[str, Any] = extract_json(response_text, dict)

        glossary = [
            GlossaryTerm(
                term=str(entry.get("term", "")).strip(),
                definition=str(entry.get("definition", "")).strip(),
                context=str(entry.get("context", "")).strip(),
            )
            for entry in data.get("glossary") or []
            if isinstance(entry, dict) and entry.get("term")
        ]
        return LectureTranslation(
            simplified_english=str(data.get("simplifiedEnglish", "")),
            translated_version=str(data.get("translatedVersion", "")),
            glossary=glossary,
            key_points=[str(p) for p in data.get("keyPoints") or []],
        )
