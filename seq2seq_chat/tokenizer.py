import logging
from typing import List, Optional, Sequence

from transformers import AutoTokenizer, PreTrainedTokenizerBase

from .generation import SpecialTokens

logger = logging.getLogger(__name__)

# Used when the tokenizer config leaves a marker undefined. These can collide with real vocabulary ids.
DEFAULT_BEGIN_ID = 0
DEFAULT_END_ID = 1
DEFAULT_PAD_ID = 0


def _marker_id(tokenizer: PreTrainedTokenizerBase, attr: str, default: int) -> int:
    value: Optional[int] = getattr(tokenizer, attr, None)
    if value is None:
        logger.warning(
            "Tokenizer defines no %s; falling back to id %d, which may collide with a vocabulary entry",
            attr,
            default,
        )
        return default
    return int(value)


class HFTokenizer:
    """Adapts a Hugging Face tokenizer to plain id lists and resolved marker ids."""

    def __init__(
        self,
        tokenizer: PreTrainedTokenizerBase,
        add_special_tokens: bool = True,
    ) -> None:
        self._tokenizer = tokenizer
        self._add_special_tokens = add_special_tokens
        self._special = SpecialTokens(
            begin_id=_marker_id(tokenizer, "bos_token_id", DEFAULT_BEGIN_ID),
            end_id=_marker_id(tokenizer, "eos_token_id", DEFAULT_END_ID),
            pad_id=_marker_id(tokenizer, "pad_token_id", DEFAULT_PAD_ID),
        )

    @property
    def special_tokens(self) -> SpecialTokens:
        return self._special

    @property
    def begin_id(self) -> int:
        return self._special.begin_id

    @property
    def end_id(self) -> int:
        return self._special.end_id

    @property
    def pad_id(self) -> int:
        return self._special.pad_id

    def encode(self, text: str) -> List[int]:
        return list(
            self._tokenizer.encode(text, add_special_tokens=self._add_special_tokens)
        )

    def decode(self, ids: Sequence[int]) -> str:
        return self._tokenizer.decode(list(ids), skip_special_tokens=True)


def load_tokenizer(model_name: str) -> HFTokenizer:
    logger.info("Loading tokenizer %s...", model_name)
    return HFTokenizer(AutoTokenizer.from_pretrained(model_name))
