"""Worker node – hosts the encoder-decoder model and serves single forward passes via HTTP.

It exposes a /forward endpoint that:

1. Receives the fixed-size source and target id lists for one generation step.
2. Runs them through the local Seq2SeqRunner.
3. Returns the [batch, target_len, vocab] logits as a serialized tensor.
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import List, Optional

import torch
from fastapi import FastAPI, HTTPException

from .helpers import _tensor_to_b64
from .models import Seq2SeqRunner, load_runner
from .schemas import ForwardRequest, ForwardResponse
from .tokenizer import load_tokenizer

logger = logging.getLogger(__name__)

MODEL_NAME: str = os.environ.get("MODEL_NAME", "t5-small")

runner: Optional[Seq2SeqRunner] = None


def _build_runner() -> Seq2SeqRunner:
    """Load the model with the tokenizer's pad marker for the encoder mask."""
    tokenizer = load_tokenizer(MODEL_NAME)
    model_runner = load_runner(MODEL_NAME, tokenizer.pad_id)
    logger.info("Runner ready: model=%s, pad_id=%d", MODEL_NAME, tokenizer.pad_id)
    return model_runner


@asynccontextmanager
async def lifespan(app: FastAPI):
    global runner

    runner = _build_runner()
    yield


app = FastAPI(title="Seq2seq inference worker", lifespan=lifespan)


def _as_tensor(name: str, ids: Optional[List[List[int]]]) -> torch.Tensor:
    if not ids or not all(ids):
        raise HTTPException(status_code=400, detail=f"Forward pass requires non-empty '{name}'")
    if len({len(row) for row in ids}) != 1:
        raise HTTPException(status_code=400, detail=f"'{name}' rows must all have the same length")
    return torch.tensor(ids, dtype=torch.long)


def _run_forward(model_runner: Seq2SeqRunner, source: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
    with torch.inference_mode():
        return model_runner(source, target)


@app.post("/forward", response_model=ForwardResponse)
async def forward(req: ForwardRequest):
    if runner is None:
        raise HTTPException(status_code=503, detail="Model not loaded yet")

    source = _as_tensor("source_ids", req.source_ids)
    target = _as_tensor("target_ids", req.target_ids)
    if source.size(0) != target.size(0):
        raise HTTPException(
            status_code=400,
            detail=f"Batch size mismatch: source {source.size(0)}, target {target.size(0)}",
        )

    time_start = time.perf_counter()

    # Model forward is blocking; keep it off the event loop
    logits = await asyncio.to_thread(_run_forward, runner, source, target)

    elapsed_ms = (time.perf_counter() - time_start) * 1000
    logger.info("Forward pass %s -> %s: %.1f ms", tuple(target.shape), tuple(logits.shape), elapsed_ms)

    return ForwardResponse(logits_b64=_tensor_to_b64(logits))


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "role": "worker",
        "model": MODEL_NAME,
        "loaded": runner is not None,
        "pad_id": runner.pad_id if runner is not None else None,
    }
