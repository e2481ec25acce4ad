"""Gateway node – user-facing API that turns one chat message into one reply. It:

1. Builds the generation context (tokenizer + inference engine) once at startup.
2. Runs the greedy generation loop for each /generate request, one at a time.
3. The engine is either the model loaded in-process, or a worker's /forward endpoint when WORKER_URL is set.
4. Maps generation failures to a fixed user-facing error and stays ready for the next message.
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException

from .engines import LocalEngine, RemoteEngine
from .generation import (
    DependencyNotReady,
    GenerationConfig,
    GenerationContext,
    GenerationError,
    get_reply,
)
from .helpers import display_reply
from .models import load_runner
from .schemas import ErrorResponse, GenerateRequest, GenerateResponse
from .tokenizer import load_tokenizer

logger = logging.getLogger(__name__)

MODEL_NAME: str = os.environ.get("MODEL_NAME", "t5-small")
# Empty / unset runs the model inside the gateway
WORKER_URL: str = os.environ.get("WORKER_URL", "")
MAX_SOURCE_LENGTH: int = int(os.environ.get("MAX_SOURCE_LENGTH", "128"))
MAX_GENERATION_LENGTH: int = int(os.environ.get("MAX_GENERATION_LENGTH", "50"))
REQUEST_TIMEOUT: float = float(os.environ.get("REQUEST_TIMEOUT", "300"))

NOT_READY_MESSAGE = "The AI model is still initializing, please wait."
FAILURE_MESSAGE = "Error: Could not run the model."

context = GenerationContext()
http_client: Optional[httpx.AsyncClient] = None
generation_lock = asyncio.Lock()


def build_context() -> GenerationContext:
    global http_client

    config = GenerationConfig(
        max_source_length=MAX_SOURCE_LENGTH,
        max_generation_length=MAX_GENERATION_LENGTH,
    )
    tokenizer = load_tokenizer(MODEL_NAME)

    if WORKER_URL:
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT))
        engine = RemoteEngine(WORKER_URL, http_client)
    else:
        engine = LocalEngine(load_runner(MODEL_NAME, tokenizer.pad_id))

    return GenerationContext(tokenizer=tokenizer, engine=engine, config=config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global context

    logger.info("Gateway starting – model=%s, worker=%s", MODEL_NAME, WORKER_URL or "<local>")
    try:
        context = build_context()
    except Exception:
        # Keep serving; /generate answers 503 until a restart succeeds
        logger.exception("Failed to initialize the model")
        context = GenerationContext()
    else:
        logger.info("Model ready: %s", context.config)

    yield
    if http_client is not None:
        await http_client.aclose()


app = FastAPI(title="Seq2seq Chat Gateway", lifespan=lifespan)


@app.post(
    "/generate",
    response_model=GenerateResponse,
    responses={500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def generate(req: GenerateRequest):
    time_start = time.perf_counter()

    # Model handles are shared, so only one generation runs at a time
    async with generation_lock:
        try:
            output = await get_reply(context, req.prompt)
        except DependencyNotReady:
            raise HTTPException(status_code=503, detail=NOT_READY_MESSAGE)
        except GenerationError:
            logger.exception("Error running the model")
            raise HTTPException(status_code=500, detail=FAILURE_MESSAGE)

    elapsed = (time.perf_counter() - time_start) * 1000

    return GenerateResponse(
        output=output,
        display=display_reply(output),
        elapsed_ms=round(elapsed, 1),
    )


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "role": "gateway",
        "model": MODEL_NAME,
        "worker_url": WORKER_URL or None,
        "ready": context.is_ready,
        "max_source_length": context.config.max_source_length,
        "max_generation_length": context.config.max_generation_length,
    }
