from typing import Dict, List, Optional, Sequence

import pytest
import torch

from seq2seq_chat.generation import (
    INPUT_SOURCE,
    INPUT_TARGET,
    OUTPUT_LOGITS,
    GenerationConfig,
    GenerationContext,
    SpecialTokens,
)

BEGIN_ID = 2
END_ID = 3
PAD_ID = 0
VOCAB_SIZE = 20


class FakeTokenizer:
    """Word-level tokenizer over a fixed vocabulary; unknown words map to id 1."""

    def __init__(self, vocab: Optional[Dict[str, int]] = None, fail_encode: bool = False) -> None:
        self.vocab = vocab or {"hello": 5, "world": 6, "hi": 7, "there": 8}
        self.inverse = {v: k for k, v in self.vocab.items()}
        self.inverse[BEGIN_ID] = "<s>"
        self.fail_encode = fail_encode
        self.encode_calls = 0
        self.decoded: List[List[int]] = []

    @property
    def special_tokens(self) -> SpecialTokens:
        return SpecialTokens(begin_id=BEGIN_ID, end_id=END_ID, pad_id=PAD_ID)

    def encode(self, text: str) -> List[int]:
        self.encode_calls += 1
        if self.fail_encode:
            raise ValueError("cannot tokenize")
        return [self.vocab.get(word, 1) for word in text.split()]

    def decode(self, ids: Sequence[int]) -> str:
        self.decoded.append(list(ids))
        return " ".join(self.inverse.get(i, f"<{i}>") for i in ids)


class ScriptedEngine:
    """Returns logits that rank picks[step] highest; repeats `default` once picks run out."""

    def __init__(
        self,
        picks: Sequence[int] = (),
        default: int = 7,
        fail_at: Optional[int] = None,
        vocab_size: int = VOCAB_SIZE,
    ) -> None:
        self.picks = list(picks)
        self.default = default
        self.fail_at = fail_at
        self.vocab_size = vocab_size
        self.calls: List[Dict[str, torch.Tensor]] = []

    async def run(self, inputs: Dict[str, torch.Tensor]) -> Dict[str, torch.Tensor]:
        step = len(self.calls)
        self.calls.append(
            {INPUT_SOURCE: inputs[INPUT_SOURCE].clone(), INPUT_TARGET: inputs[INPUT_TARGET].clone()}
        )
        if self.fail_at is not None and step == self.fail_at:
            raise RuntimeError(f"engine exploded at step {step}")

        target_len = inputs[INPUT_TARGET].size(1)
        logits = torch.zeros(1, target_len, self.vocab_size)
        pick = self.picks[step] if step < len(self.picks) else self.default
        logits[0, step, pick] = 1.0
        return {OUTPUT_LOGITS: logits}


@pytest.fixture
def tokenizer() -> FakeTokenizer:
    return FakeTokenizer()


@pytest.fixture
def config() -> GenerationConfig:
    return GenerationConfig(max_source_length=8, max_generation_length=5)


@pytest.fixture
def make_context(tokenizer, config):
    def _make(engine, tok=None) -> GenerationContext:
        return GenerationContext(tokenizer=tok or tokenizer, engine=engine, config=config)

    return _make
