from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from app.core.config import settings

logger = structlog.get_logger()

SYSTEM_PROMPT = (
    "You are a SaaS pricing expert. Answer with a single JSON object exactly as "
    "requested and nothing else."
)

# Default models per provider
DEFAULT_MODELS = {
    "google": "gemini-2.5-flash",
    "openai": "gpt-4.1-mini",
    "anthropic": "claude-haiku-4-5-20251001",
}


# --- Evaluator abstraction ---


class PersonaEvaluator(ABC):
    """One prompt in, the model's raw text out.

    Transport errors propagate; the orchestrator decides what they mean.
    """

    def __init__(self, model: str | None = None, temperature: float | None = None) -> None:
        self.model = model
        self.temperature = settings.llm_temperature if temperature is None else temperature

    @abstractmethod
    async def evaluate(self, prompt: str) -> str | None:
        """Send ``prompt`` and return the raw response text (None if empty)."""
        ...


class GoogleEvaluator(PersonaEvaluator):
    async def evaluate(self, prompt: str) -> str | None:
        from google import genai

        model = self.model or resolve_model("google")
        client = genai.Client(api_key=settings.google_ai_api_key)
        response = await client.aio.models.generate_content(
            model=model,
            contents=[{"role": "user", "parts": [{"text": prompt}]}],
            config=genai.types.GenerateContentConfig(
                response_mime_type="application/json",
                temperature=self.temperature,
            ),
        )
        return response.text


class OpenAIEvaluator(PersonaEvaluator):
    async def evaluate(self, prompt: str) -> str | None:
        from openai import AsyncOpenAI

        model = self.model or resolve_model("openai")
        client = AsyncOpenAI(api_key=settings.openai_api_key)
        response = await client.chat.completions.create(
            model=model,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self.temperature,
        )
        return response.choices[0].message.content


class AnthropicEvaluator(PersonaEvaluator):
    async def evaluate(self, prompt: str) -> str | None:
        from anthropic import AsyncAnthropic

        model = self.model or resolve_model("anthropic")
        client = AsyncAnthropic(api_key=settings.anthropic_api_key)
        response = await client.messages.create(
            model=model,
            max_tokens=1024,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
        )
        return response.content[0].text if response.content else None


EVALUATORS: dict[str, type[PersonaEvaluator]] = {
    "google": GoogleEvaluator,
    "openai": OpenAIEvaluator,
    "anthropic": AnthropicEvaluator,
}


def resolve_model(provider: str) -> str:
    """Resolve the model name: use llm_model if set, else provider default."""
    if settings.llm_model:
        return settings.llm_model
    return DEFAULT_MODELS[provider]


def get_evaluator(provider: str | None = None, model: str | None = None) -> PersonaEvaluator:
    """Factory: return the configured persona evaluator."""
    name = (provider or settings.llm_provider).lower()
    if name not in EVALUATORS:
        raise ValueError(
            f"Unknown LLM provider {name!r}; expected one of {', '.join(EVALUATORS)}"
        )
    evaluator = EVALUATORS[name](model=model)
    logger.debug("evaluator_selected", provider=name, model=model or resolve_model(name))
    return evaluator
