"""
FastAPI app exposing one streaming endpoint per content kind.

To run locally:
    export MODEL_API_KEY="your_key_here"
    uvicorn backend.api:app --reload --host 0.0.0.0 --port 8000

Every /generate/* endpoint answers 200 with `text/event-stream` whose body is
plain incremental text (not real SSE), or a JSON `{error, details}` body.
"""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from .config import load_settings
from .errors import ConfigError, UpstreamError
from .llm_adapter import ChunkRelay
from .prompts import ContentKind, build_prompt

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("api")

OUTLINE_ACTION = "generateOutlineHTML"

app = FastAPI(title="Study Tree", description="Streams generated study outlines, notes and quizzes")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class OutlineIn(BaseModel):
    action: str
    topic: str


class SubOutlineIn(BaseModel):
    action: str
    subtopic: str
    mainTopic: str


class NotesIn(BaseModel):
    title: Optional[str] = "Unknown Title"
    sectionTitle: Optional[str] = "Unknown Section"
    subtopic: Optional[str] = "Unknown Subtopic"


class DiveDeeperIn(BaseModel):
    topicChain: str
    followUpQuestion: str


def get_relay() -> ChunkRelay:
    return ChunkRelay(load_settings())


def error_response(status_code: int, error: str, details=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details})


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError):
    logger.error(f"{request.url.path}: {exc}")
    return error_response(500, exc.message, exc.details)


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    return error_response(exc.status_code, exc.message, exc.body)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return error_response(400, "Invalid request body", str(exc))


async def stream_kind(relay: ChunkRelay, kind: ContentKind, **fields) -> StreamingResponse:
    try:
        spec = build_prompt(kind, model=relay.settings.model_name, **fields)
    except ValueError as e:
        return error_response(400, "Invalid request body", str(e))
    stream = await relay.open(spec)
    logger.info(f"Relaying {kind.value} stream")
    return StreamingResponse(stream, media_type="text/event-stream")


@app.post("/generate/outline")
async def generate_outline(payload: OutlineIn, relay: ChunkRelay = Depends(get_relay)):
    if payload.action != OUTLINE_ACTION:
        return error_response(400, "Invalid action for generate outline endpoint", payload.action)
    return await stream_kind(relay, ContentKind.OUTLINE, topic=payload.topic)


@app.post("/generate/subOutline")
async def generate_sub_outline(payload: SubOutlineIn, relay: ChunkRelay = Depends(get_relay)):
    if payload.action != OUTLINE_ACTION:
        return error_response(400, "Invalid action for generate sub-outline endpoint", payload.action)
    return await stream_kind(relay, ContentKind.SUB_OUTLINE,
                             subtopic=payload.subtopic, mainTopic=payload.mainTopic)


@app.post("/generate/notes")
async def generate_notes(payload: NotesIn, relay: ChunkRelay = Depends(get_relay)):
    return await stream_kind(relay, ContentKind.NOTES, **payload.model_dump())


@app.post("/generate/quiz")
async def generate_quiz(payload: NotesIn, relay: ChunkRelay = Depends(get_relay)):
    return await stream_kind(relay, ContentKind.QUIZ, **payload.model_dump())


@app.post("/generate/diveDeeper")
async def generate_dive_deeper(payload: DiveDeeperIn, relay: ChunkRelay = Depends(get_relay)):
    return await stream_kind(relay, ContentKind.DIVE_DEEPER, **payload.model_dump())


@app.get("/")
def root():
    return {"message": "Welcome to the Study Tree API"}


@app.get("/health")
def health():
    return {"status": "ok"}
