from .generation import AudioGenerationService, AudioGenerationError, AudioGenerationResult

__all__ = [
    "AudioGenerationService",
    "AudioGenerationError",
    "AudioGenerationResult",
]
