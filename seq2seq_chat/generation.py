"""Greedy auto-regressive generation against an encoder-decoder model. It:

1. Encodes the user's prompt and pads / truncates it to a fixed source length.
2. Starts the target sequence with the begin marker.
3. Repeatedly runs the inference engine on the fixed-size source and target tensors and greedily picks the next token.
4. Stops on the end or pad marker, or once max_generation_length tokens have been produced.
5. Decodes everything after the begin marker.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

import torch

logger = logging.getLogger(__name__)

INPUT_SOURCE = "source"
INPUT_TARGET = "target"
OUTPUT_LOGITS = "output"


class GenerationError(Exception):
    """Base class for failures that abort a single reply."""


class DependencyNotReady(GenerationError):
    """Tokenizer or inference engine has not been initialized yet."""


class EncodingFailure(GenerationError):
    """The tokenizer rejected the input or could not decode the output."""


class InferenceFailure(GenerationError):
    """The inference engine call failed or returned unusable logits."""


@dataclass(frozen=True)
class SpecialTokens:
    begin_id: int
    end_id: int
    pad_id: int


class Tokenizer(Protocol):
    @property
    def special_tokens(self) -> SpecialTokens: ...

    def encode(self, text: str) -> List[int]: ...

    def decode(self, ids: Sequence[int]) -> str: ...


class InferenceEngine(Protocol):
    async def run(self, inputs: Dict[str, torch.Tensor]) -> Dict[str, torch.Tensor]: ...


@dataclass(frozen=True)
class GenerationConfig:
    max_source_length: int = 128
    max_generation_length: int = 50

    def __post_init__(self) -> None:
        if self.max_source_length < 1:
            raise ValueError(
                f"max_source_length must be >= 1, got {self.max_source_length}"
            )
        if self.max_generation_length < 1:
            raise ValueError(
                f"max_generation_length must be >= 1, got {self.max_generation_length}"
            )


@dataclass
class GenerationContext:
    """Model handles owned by the hosting application.

    Set once at startup and only read afterwards; each generation allocates its own sequences.
    """

    tokenizer: Optional[Tokenizer] = None
    engine: Optional[InferenceEngine] = None
    config: GenerationConfig = field(default_factory=GenerationConfig)

    @property
    def is_ready(self) -> bool:
        return self.tokenizer is not None and self.engine is not None


def pad_or_truncate(ids: Sequence[int], length: int, pad_id: int) -> List[int]:
    if len(ids) >= length:
        return list(ids[:length])
    return list(ids) + [pad_id] * (length - len(ids))


def build_source(tokenizer: Tokenizer, prompt: str, max_source_length: int) -> torch.Tensor:
    try:
        ids = tokenizer.encode(prompt)
    except Exception as exc:
        raise EncodingFailure(f"Could not encode prompt: {exc}") from exc

    pad_id = tokenizer.special_tokens.pad_id
    source = pad_or_truncate(ids, max_source_length, pad_id)
    return torch.tensor([source], dtype=torch.long)


def build_target(generated: Sequence[int], max_generation_length: int, pad_id: int) -> torch.Tensor:
    target = pad_or_truncate(generated, max_generation_length, pad_id)
    return torch.tensor([target], dtype=torch.long)


def select_next_token(logits: torch.Tensor, position: int) -> int:
    """Greedy pick for one position of a [1, target_len, vocab] logits tensor.

    torch.argmax returns the first maximal index, so ties go to the lowest token id.
    """
    return int(torch.argmax(logits[0, position, :]).item())


def _check_logits(outputs: Dict[str, torch.Tensor], position: int) -> torch.Tensor:
    if not isinstance(outputs, Mapping):
        raise InferenceFailure(f"Inference engine returned {type(outputs).__name__}, expected a mapping")
    logits = outputs.get(OUTPUT_LOGITS)
    if logits is None:
        raise InferenceFailure(f"Inference engine did not return '{OUTPUT_LOGITS}'")
    if not isinstance(logits, torch.Tensor):
        raise InferenceFailure(f"'{OUTPUT_LOGITS}' is {type(logits).__name__}, expected a tensor")
    if logits.dim() != 3 or logits.size(0) < 1 or logits.size(1) <= position:
        raise InferenceFailure(
            f"Unexpected logits shape {tuple(logits.shape)} at position {position}"
        )
    return logits


async def generate_ids(context: GenerationContext, prompt: str) -> List[int]:
    """Run the greedy loop and return the generated ids, begin marker included."""
    if not context.is_ready:
        raise DependencyNotReady("Tokenizer or inference engine is not initialized")

    tokenizer = context.tokenizer
    config = context.config
    special = tokenizer.special_tokens

    source = build_source(tokenizer, prompt, config.max_source_length)
    generated: List[int] = [special.begin_id]

    for step in range(config.max_generation_length):
        target = build_target(generated, config.max_generation_length, special.pad_id)

        try:
            outputs = await context.engine.run({INPUT_SOURCE: source, INPUT_TARGET: target})
        except Exception as exc:
            raise InferenceFailure(f"Inference failed at step {step}: {exc}") from exc

        logits = _check_logits(outputs, step)
        next_id = select_next_token(logits, step)
        logger.debug("Step %d picked token %d", step, next_id)

        if next_id in (special.end_id, special.pad_id):
            break
        generated.append(next_id)

    return generated


async def get_reply(context: GenerationContext, prompt: str) -> str:
    """Produce the reply text for one prompt. An empty string is a valid reply."""
    generated = await generate_ids(context, prompt)

    try:
        reply = context.tokenizer.decode(generated[1:])
    except Exception as exc:
        raise EncodingFailure(f"Could not decode reply: {exc}") from exc

    logger.info("Generated %d tokens", len(generated) - 1)
    return reply
