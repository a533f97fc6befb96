from __future__ import annotations

from typing import Literal

from app.modules.pricing.schemas import Persona

EvaluationStage = Literal["transport", "timeout", "empty", "json_parse", "schema"]


class EvaluationError(Exception):
    """A persona evaluator produced no usable opinion.

    Attributes:
        persona: Which persona failed.
        stage: Where it failed (transport, timeout, empty, json_parse, schema).
        errors: Human-readable error descriptions.
        raw_response: The raw evaluator text, when there was one.
    """

    def __init__(
        self,
        persona: Persona,
        stage: EvaluationStage,
        errors: list[str],
        raw_response: str | None = None,
    ) -> None:
        self.persona = persona
        self.stage = stage
        self.errors = errors
        self.raw_response = raw_response
        super().__init__(
            f"Failed to analyze {persona.value} ({stage}): " + "; ".join(errors)
        )


class EnsembleError(EvaluationError):
    """An ensemble run failed; no partial result is produced.

    ``cancelled_personas`` lists the sibling calls that were still in flight
    and got cancelled when the failure became known.
    """

    def __init__(
        self,
        cause: EvaluationError,
        cancelled_personas: list[Persona] | None = None,
    ) -> None:
        super().__init__(
            persona=cause.persona,
            stage=cause.stage,
            errors=cause.errors,
            raw_response=cause.raw_response,
        )
        self.cancelled_personas = cancelled_personas or []

    @property
    def failed_persona(self) -> Persona:
        return self.persona
