from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

FinishReason = Literal["stop", "length", "content"]


class Logprobs(BaseModel):
    tokens: list[str] = Field(default_factory=list, description="Whitespace-split tokens")
    token_logprobs: list[float] = Field(default_factory=list, description="Log probability per token")
    text_offset: list[int] = Field(default_factory=list, description="Character offset per token")
    top_logprobs: list[dict[str, float]] = Field(
        default_factory=list, description="Alternative tokens and their log probabilities"
    )


class Choice(BaseModel):
    text: str = Field(..., description="Completion text")
    index: int = Field(..., ge=0, description="Position among the returned choices")
    logprobs: Logprobs | None = Field(None, description="Mock log probabilities, if requested")
    finish_reason: FinishReason | None = Field(None, description="Why the completion ended")


class Usage(BaseModel):
    prompt_tokens: int = Field(..., ge=0, description="Tokens in the prompt")
    completion_tokens: int = Field(..., ge=0, description="Tokens across all choices")
    total_tokens: int = Field(..., ge=0, description="prompt_tokens + completion_tokens")


class CompletionResponse(BaseModel):
    model_config = ConfigDict(
        protected_namespaces=(),
        json_schema_extra={
            "example": {
                "id": "cmpl-mock-id-3f1c2b9e-8a44-4c1e-9d0a-5b7e2f6a1c33",
                "object": "text_completion",
                "created": 1700000000,
                "model": "gpt-3.5-turbo-instruct",
                "choices": [
                    {"text": "", "index": 0, "logprobs": None, "finish_reason": "content"}
                ],
                "usage": {"prompt_tokens": 5, "completion_tokens": 0, "total_tokens": 5},
            }
        },
    )

    id: str = Field(..., description="Unique completion identifier")
    object: Literal["text_completion"] = "text_completion"
    created: int = Field(..., ge=0, description="Creation time in epoch seconds")
    model: str = Field(..., description="Model named in the request")
    choices: list[Choice]
    usage: Usage


class ErrorDetail(BaseModel):
    message: str
    type: str = "invalid_request_error"
    param: str | None = None
    code: str | None = None


class ErrorResponse(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "message": "Temperature must be between 0.0 and 2.0, got 2.5",
                    "type": "invalid_request_error",
                    "param": "temperature",
                    "code": None,
                }
            }
        }
    )

    error: ErrorDetail
