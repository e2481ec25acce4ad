"""Inference engines: one forward pass from named input tensors to named output tensors.

LocalEngine runs the model in this process; RemoteEngine sends the ids to a worker's /forward endpoint.
"""

import asyncio
import logging
from typing import Dict

import httpx
import torch

from .generation import INPUT_SOURCE, INPUT_TARGET, OUTPUT_LOGITS
from .helpers import _b64_to_tensor
from .models import Seq2SeqRunner
from .schemas import ForwardRequest

logger = logging.getLogger(__name__)


class EngineError(RuntimeError):
    pass


def _require_inputs(inputs: Dict[str, torch.Tensor]) -> None:
    missing = [name for name in (INPUT_SOURCE, INPUT_TARGET) if name not in inputs]
    if missing:
        raise EngineError(f"Missing named inputs: {', '.join(missing)}")


class LocalEngine:
    def __init__(self, runner: Seq2SeqRunner) -> None:
        self.runner = runner

    def _forward(self, source: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
        with torch.inference_mode():
            return self.runner(source, target)

    async def run(self, inputs: Dict[str, torch.Tensor]) -> Dict[str, torch.Tensor]:
        _require_inputs(inputs)
        # Model forward is blocking; keep it off the event loop
        logits = await asyncio.to_thread(
            self._forward, inputs[INPUT_SOURCE], inputs[INPUT_TARGET]
        )
        return {OUTPUT_LOGITS: logits}


class RemoteEngine:
    def __init__(self, base_url: str, client: httpx.AsyncClient) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client

    async def run(self, inputs: Dict[str, torch.Tensor]) -> Dict[str, torch.Tensor]:
        _require_inputs(inputs)
        payload = ForwardRequest(
            source_ids=inputs[INPUT_SOURCE].tolist(),
            target_ids=inputs[INPUT_TARGET].tolist(),
        )
        resp = await self.client.post(
            f"{self.base_url}/forward", json=payload.model_dump()
        )
        if resp.status_code != 200:
            raise EngineError(f"Worker returned {resp.status_code}: {resp.text}")

        body = resp.json()
        logits_b64 = body.get("logits_b64")
        if logits_b64 is None:
            raise EngineError("Worker did not return logits")

        return {OUTPUT_LOGITS: _b64_to_tensor(logits_b64)}
