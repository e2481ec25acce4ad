from typing import List, Optional

from pydantic import BaseModel, field_validator


class GenerateRequest(BaseModel):
    prompt: str

    @field_validator("prompt")
    @classmethod
    def _strip_prompt(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("prompt must not be empty")
        return value


class GenerateResponse(BaseModel):
    # output is the raw reply and may be empty; display substitutes a placeholder
    output: str
    display: str
    elapsed_ms: float


class ForwardRequest(BaseModel):
    # One id list per batch item; source is padded to max_source_length, target to max_generation_length
    source_ids: Optional[List[List[int]]] = None
    target_ids: Optional[List[List[int]]] = None


class ForwardResponse(BaseModel):
    logits_b64: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
