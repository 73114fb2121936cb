"""Story text generation."""

from .generation import (
    GeneratedStory,
    StoryGenerationError,
    StoryGenerator,
    format_inputs_message,
    get_story_title,
    parse_story_response,
)

__all__ = [
    "GeneratedStory",
    "StoryGenerationError",
    "StoryGenerator",
    "format_inputs_message",
    "get_story_title",
    "parse_story_response",
]
