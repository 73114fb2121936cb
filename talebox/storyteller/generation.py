"""
Story text generation.

Turns the user's story selections into a prompt, asks the chat model for a
story and splits the answer into a title and the story body.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from talebox.config import config
from talebox.utils.logging import story_logger as logger


FIELD_LABELS = {
    "hero": "Hero",
    "sidekick": "Sidekick",
    "object": "Object",
    "place": "Place",
    "moral": "What happens",
    "language": "Language",
}

FIELD_ORDER = ("hero", "sidekick", "object", "place", "moral", "language")

MAX_TITLE_CHARS = 120
MAX_TITLE_WORDS = 12


class StoryGenerationError(Exception):
    """Raised when the model is not configured or its answer is unusable."""
    pass


@dataclass
class GeneratedStory:
    title: str
    story_text: str


def _selection(inputs: Dict[str, Any], field_id: str) -> Dict[str, Any]:
    value = inputs.get(field_id)
    return value if isinstance(value, dict) else {}


def format_inputs_message(inputs: Dict[str, Any]) -> str:
    """Build the user message listing the chosen story elements."""
    parts = ["Write a children's story with these elements:"]

    for field_id in FIELD_ORDER:
        selection = _selection(inputs, field_id)
        label = FIELD_LABELS.get(field_id, field_id)

        if selection.get("optionId") and selection.get("optionName"):
            line = f"- {label}: {selection['optionName']}"
            if selection.get("customName"):
                line += f" (name: {selection['customName']})"
            parts.append(line)
        elif field_id == "moral" and selection.get("freeText"):
            parts.append(f"- {label}: {selection['freeText']}")

    language = _selection(inputs, "language").get("optionName")
    if language:
        parts.append(f"Write the story in {language}.")
        parts.append("Do not use any other language.")

    return "\n".join(parts)


def get_story_title(inputs: Dict[str, Any]) -> str:
    """Fallback title derived from the hero selection."""
    hero = _selection(inputs, "hero")
    if hero.get("customName"):
        return f"The story of {hero['customName']}"
    if hero.get("optionName"):
        return f"The story of {hero['optionName']}"
    return "A children's story"


def parse_story_response(text: str, inputs: Dict[str, Any]) -> GeneratedStory:
    """
    Split a model answer into title and body.

    The first non-blank line is the title. When it is too long to be a
    title it is kept as part of the story and a title is derived from the
    inputs instead.
    """
    normalized = (text or "").replace("\r\n", "\n").replace("\r", "\n").lstrip()
    lines = normalized.split("\n")
    title_line = lines[0].strip() if lines else ""
    rest = "\n".join(lines[1:]).strip()

    if not title_line or not rest:
        raise StoryGenerationError("Model did not return a title and a story")

    too_long = len(title_line) > MAX_TITLE_CHARS or len(title_line.split()) > MAX_TITLE_WORDS
    if too_long:
        return GeneratedStory(
            title=get_story_title(inputs),
            story_text=f"{title_line}\n{rest}".strip(),
        )
    return GeneratedStory(title=title_line, story_text=rest)


def _response_text(content: Any) -> str:
    """Chat model content is a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return ""


class StoryGenerator:
    """
    Claude-backed story writer.

    The chat model is built lazily so the processor can be constructed
    without an API key; the first generate() call fails instead.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        llm=None,
    ):
        self.api_key = api_key or config.ANTHROPIC_API_KEY
        self.model = model or config.STORY_MODEL
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            if not self.api_key:
                raise StoryGenerationError("ANTHROPIC_API_KEY not configured")
            from langchain_anthropic import ChatAnthropic
            self._llm = ChatAnthropic(
                model=self.model,
                temperature=config.STORY_TEMPERATURE,
                max_tokens=config.STORY_MAX_TOKENS,
                anthropic_api_key=self.api_key,
                timeout=config.STORY_TIMEOUT_SECONDS,
            )
        return self._llm

    async def generate(self, inputs: Dict[str, Any]) -> GeneratedStory:
        messages = [
            SystemMessage(content=config.STORY_SYSTEM_PROMPT),
            HumanMessage(content=format_inputs_message(inputs)),
        ]

        logger.info("Requesting story text", model=self.model)
        response = await self.llm.ainvoke(messages)

        content = _response_text(response.content)
        if not content.strip():
            raise StoryGenerationError("Model returned an empty answer")

        story = parse_story_response(content, inputs)
        logger.info("Story text generated", title=story.title, chars=len(story.story_text))
        return story
