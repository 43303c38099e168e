"""Prayer generation: Gemini (primary) + Groq (fallback)."""

from .service import (
    GeminiPrayerGenerator,
    GenerationOutput,
    GroqPrayerGenerator,
    PrayerGeneratorService,
    create_prayer_generator,
)

__all__ = [
    "GeminiPrayerGenerator",
    "GenerationOutput",
    "GroqPrayerGenerator",
    "PrayerGeneratorService",
    "create_prayer_generator",
]
