# constants/models.py

# OpenRouter ids of models that answer the short extraction prompt with a bare JSON array
GEMINI_FLASH = "google/gemini-2.0-flash-001"
GEMINI_FLASH_LITE = "google/gemini-2.0-flash-lite-001"
GPT_MINI = "openai/gpt-4o-mini"
CLAUDE_HAIKU = "anthropic/claude-3.5-haiku"

DEFAULT_EXTRACTION_MODEL = GEMINI_FLASH

EXTRACTION_MODELS = {
    GEMINI_FLASH: "Gemini 2.0 Flash",
    GEMINI_FLASH_LITE: "Gemini 2.0 Flash Lite",
    GPT_MINI: "GPT-4o Mini",
    CLAUDE_HAIKU: "Claude 3.5 Haiku",
}


def get_display_name(model_id: str) -> str:
    return EXTRACTION_MODELS.get(model_id, model_id)
