"""Syrinx API routes: GET /models, POST /synthesis."""


from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from syrinx_common.errors import ErrorResponse
from syrinx_common.logging import get_logger

from .config import settings
from .errors import RegistryError, SpawnError
from .registry import ModelRegistry
from .relay import AUDIO_MEDIA_TYPE, AudioStreamResponse
from .schemas import ModelList, SynthesisRequest
from .synthesis import synthesize
from .transcoder import Transcoder

log = get_logger(__name__)

router = APIRouter(tags=["syrinx"])


def client_key(request: Request) -> str:
    """Rate-limit key: first X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for", "")
    return forwarded.split(",")[0].strip() or get_remote_address(request)


limiter = Limiter(key_func=client_key, strategy="moving-window", headers_enabled=True)


def get_registry(request: Request) -> ModelRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise RegistryError("Model registry is not loaded")
    return registry


def get_transcoder(request: Request) -> Transcoder:
    transcoder = getattr(request.app.state, "transcoder", None)
    if transcoder is None:
        raise SpawnError("No transcoder configured")
    return transcoder


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def index() -> str:
    return "Syrinx-API"


@router.get("/models", response_model=ModelList, responses={500: {"model": ErrorResponse}})
async def list_models(registry: ModelRegistry = Depends(get_registry)) -> ModelList:
    """List the loaded voice names."""
    return ModelList(models=registry.list_names())


@router.post(
    "/synthesis",
    response_class=AudioStreamResponse,
    responses={
        200: {"content": {AUDIO_MEDIA_TYPE: {}}, "description": "ADTS AAC audio stream"},
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
)
@limiter.limit(settings.rate_limit)
async def synthesis(
    request: Request,
    body: SynthesisRequest,
    registry: ModelRegistry = Depends(get_registry),
    transcoder: Transcoder = Depends(get_transcoder),
) -> AudioStreamResponse:
    """Stream ``text`` spoken by ``voice`` as ADTS AAC."""
    voice = registry.lookup(body.voice)
    pcm = synthesize(
        voice,
        body.text,
        body.prosody(),
        max_text_length=settings.max_text_length,
        prefetch=settings.prefetch_chunks,
    )
    session = await transcoder.open(pcm)

    log.info("synthesis_stream_started", voice=voice.name, pid=session.pid)
    return AudioStreamResponse(session, timeout=settings.max_stream_seconds or None)
