from __future__ import annotations

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    ValidationInfo,
    field_validator,
)

DEFAULT_MAX_TOKENS = 16


class CompletionRequest(BaseModel):
    """Body of ``POST /v1/completions``.

    Ranges are deliberately not expressed as schema constraints: the request
    validator checks them in a fixed order so the reported ``param`` is stable.
    """

    model_config = ConfigDict(
        extra="ignore",
        protected_namespaces=(),
        json_schema_extra={
            "example": {
                "model": "gpt-3.5-turbo-instruct",
                "prompt": "Say this is a test",
                "max_tokens": 7,
                "temperature": 0,
                "n": 1,
                "echo": True,
                "stop": ["\n"],
                "logprobs": 2,
            }
        },
    )

    model: str = Field(..., description="ID of the model to use")
    prompt: str | None = Field(None, description="The prompt to generate completions for")
    suffix: str | None = Field(None, description="Text that comes after the completion")
    max_tokens: StrictInt = Field(DEFAULT_MAX_TOKENS, description="Maximum tokens to generate")
    temperature: StrictFloat = Field(1.0, description="Sampling temperature")
    top_p: StrictFloat = Field(1.0, description="Nucleus sampling probability")
    n: StrictInt = Field(1, description="Number of completions to generate")
    stream: StrictBool = Field(False, description="Accepted for compatibility; never streamed")
    logprobs: StrictInt | None = Field(None, description="Number of alternative tokens to report")
    echo: StrictBool = Field(False, description="Echo back the prompt in the completion")
    stop: str | list[str] | None = Field(None, description="Sequence(s) that end the completion")
    presence_penalty: StrictFloat = Field(0.0, description="Penalty for tokens already present")
    frequency_penalty: StrictFloat = Field(0.0, description="Penalty proportional to token frequency")
    best_of: StrictInt | None = Field(None, description="Candidates to generate server-side")
    logit_bias: dict[str, float] | None = Field(None, description="Per-token likelihood bias")
    user: str | None = Field(None, description="End-user identifier")

    @field_validator(
        "max_tokens",
        "temperature",
        "top_p",
        "n",
        "stream",
        "echo",
        "presence_penalty",
        "frequency_penalty",
        mode="before",
    )
    @classmethod
    def null_means_default(cls, v, info: ValidationInfo):
        if v is None:
            return cls.model_fields[info.field_name].default
        return v

    @property
    def prompt_text(self) -> str:
        return self.prompt or ""

    @property
    def stop_sequences(self) -> list[str]:
        """The stop field as one ordered list, whichever shape the client sent."""
        if self.stop is None:
            return []
        if isinstance(self.stop, str):
            return [self.stop]
        return list(self.stop)
