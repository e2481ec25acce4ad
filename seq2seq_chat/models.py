import logging

import torch
import torch.nn as nn
from transformers import AutoModelForSeq2SeqLM, PreTrainedModel

logger = logging.getLogger(__name__)


class Seq2SeqRunner(nn.Module):
    """One forward pass of an encoder-decoder model over fixed-size source / target ids.

    - The encoder attends only to non-pad source positions.
    - The decoder is causal, so logits at position i depend on target[:i + 1] only and trailing pad slots are harmless.
    """

    def __init__(self, model: PreTrainedModel, pad_id: int) -> None:
        super().__init__()
        self.model = model
        self.pad_id = pad_id

    def forward(
        self,
        source: torch.LongTensor,
        target: torch.LongTensor,
    ) -> torch.Tensor:
        if source.dim() != 2 or target.dim() != 2:
            raise ValueError(
                f"source and target must be [batch, length], got {tuple(source.shape)} and {tuple(target.shape)}"
            )

        attention_mask = (source != self.pad_id).long()
        outputs = self.model(
            input_ids=source,
            attention_mask=attention_mask,
            decoder_input_ids=target,
        )
        return outputs.logits


def load_runner(model_name: str, pad_id: int) -> Seq2SeqRunner:
    logger.info("Loading model %s...", model_name)
    model = AutoModelForSeq2SeqLM.from_pretrained(model_name)
    model.eval()

    runner = Seq2SeqRunner(model, pad_id)
    runner.eval()
    return runner
