"""
Sift Server

FastAPI application exposing the knowledge pipeline.

The caller's identity arrives in the ``X-Owner-Id`` header (authentication
happens upstream); every endpoint is scoped to that owner.

Endpoints:
- GET  /health
- POST /records                      capture a reference
- GET  /records, /records/{id}       list / read
- POST /records/{id}/process         run one record now
- POST /records/{id}/curate          keep or discard, set queues
- POST /records/{id}/annotate        curator note and highlights
- POST /records/{id}/message         render the team message
- POST /records/{id}/share           render and deliver
- POST /records/{id}/infographic     quick or premium infographic
- POST /newsletter/draft             draft from queued or given records
- POST /deliver                      deliver a client-held message
- GET  /media/{path}                 generated images (no owner header)
- POST /batches                      bounded pending batch
- POST /jobs, GET /jobs/{id}, POST /jobs/{id}/cancel
- POST /ask, POST /search, POST /quotes
- POST /images, POST /images/{id}/summary, POST /images/search
- POST /reindex, GET /stats
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from .common.config import ensure_directories, load_config, validate_config
from .common.errors import OwnershipError, TransientExternalError
from .common.media_store import MEDIA_ROUTE
from .distribution import DistributionOption, InfographicKind, Message
from .ingest.batch import DEFAULT_BATCH_SIZE
from .retriever import SearchMode
from .service import KnowledgePipeline

logger = logging.getLogger("sift.server")

# Global state
pipeline: Optional[KnowledgePipeline] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline on startup and resume interrupted jobs"""
    global pipeline

    logger.info("Starting up...")
    resume = True
    if pipeline is None:
        ensure_directories()
        config = load_config()
        validate_config(config)
        pipeline = KnowledgePipeline.from_config(config)
        resume = config.server.resume_jobs
        logger.info("Pipeline ready (store: %s)", config.store.backend)

    if resume:
        resumed = pipeline.jobs.resume_interrupted()
        if resumed:
            logger.info("Resumed %d interrupted job(s)", len(resumed))

    yield

    logger.info("Shutting down...")
    await pipeline.jobs.shutdown()


app = FastAPI(
    title="Sift",
    description="Content ingestion and knowledge retrieval with cited answers",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Error mapping
# =============================================================================

@app.exception_handler(OwnershipError)
async def ownership_error_handler(request: Request, exc: OwnershipError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(TransientExternalError)
async def transient_error_handler(request: Request, exc: TransientExternalError):
    logger.error("%s service failed: %s", exc.service or "external", exc)
    return JSONResponse(
        status_code=502,
        content={"error": str(exc), "service": exc.service, "retryable": exc.retryable},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


# =============================================================================
# Request Models
# =============================================================================

class CaptureRequest(BaseModel):
    ref: str = ""
    notes: str = ""
    title: Optional[str] = None
    document_url: Optional[str] = None
    content: str = ""


class CurateRequest(BaseModel):
    keep: bool = True
    team: bool = False
    newsletter: bool = False
    linkedin: bool = False


class AnnotateRequest(BaseModel):
    note: Optional[str] = None
    highlighted_findings: Optional[List[int]] = None
    highlighted_quotes: Optional[List[int]] = None


class MessageRequest(BaseModel):
    option: DistributionOption = DistributionOption.SUMMARY_ONLY


class InfographicRequest(BaseModel):
    kind: InfographicKind = InfographicKind.QUICK
    force: bool = False


class NewsletterRequest(BaseModel):
    record_ids: Optional[List[str]] = None
    mark_shared: bool = False


class BatchRequest(BaseModel):
    limit: int = Field(default=DEFAULT_BATCH_SIZE, ge=1, le=100)


class AskRequest(BaseModel):
    question: str
    mode: SearchMode = SearchMode.STANDARD


class SearchRequest(BaseModel):
    query: str
    limit: Optional[int] = Field(default=None, ge=1, le=100)
    content_types: Optional[List[str]] = None


class QuoteRequest(BaseModel):
    query: str
    context: Optional[str] = None
    count: int = Field(default=5, ge=1, le=50)


class ImageRequest(BaseModel):
    image_url: str
    title: str = ""
    source_reference: Optional[str] = None
    mime_type: Optional[str] = None


class ImageSearchRequest(BaseModel):
    query: str
    chart_type: Optional[str] = None
    count: int = Field(default=12, ge=1, le=50)


# =============================================================================
# Dependencies
# =============================================================================

def get_pipeline() -> KnowledgePipeline:
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return pipeline


def get_owner(x_owner_id: Optional[str] = Header(None)) -> str:
    if not x_owner_id or not x_owner_id.strip():
        raise HTTPException(status_code=401, detail="X-Owner-Id header required")
    return x_owner_id.strip()


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "sift",
        "initialized": pipeline is not None,
        "embedding_available": pipeline.embedder.is_available if pipeline else False,
        "synthesis_available": pipeline.synthesizer.has_llm if pipeline else False,
    }


@app.post("/records", status_code=201)
def capture(body: CaptureRequest, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    record_id = p.capture_reference(
        owner, body.ref, body.notes, title=body.title, document_url=body.document_url, content=body.content,
    )
    return {"id": record_id, "status": "pending"}


@app.get("/records")
def list_records(
    status: Optional[str] = None,
    limit: Optional[int] = None,
    owner: str = Depends(get_owner),
    p: KnowledgePipeline = Depends(get_pipeline),
):
    records = p.list_records(owner, status=status, limit=limit)
    return {
        "count": len(records),
        "items": [r.model_dump(mode="json", exclude={"embedding", "content"}) for r in records],
    }


@app.get("/records/{record_id}")
def get_record(record_id: str, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    return p.get_record(owner, record_id).model_dump(mode="json", exclude={"embedding"})


@app.post("/records/{record_id}/process")
def process_record(record_id: str, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    outcome = p.process_record(owner, record_id)
    return {
        "id": record_id,
        "status": outcome.record.status.value,
        "source_kind": outcome.source_kind,
        "embedded": outcome.embedded,
        "degraded": outcome.record.structured.degraded if outcome.record.structured else None,
        "error": outcome.error,
    }


@app.post("/records/{record_id}/curate")
def curate(record_id: str, body: CurateRequest, owner: str = Depends(get_owner),
           p: KnowledgePipeline = Depends(get_pipeline)):
    record = p.curate_record(owner, record_id, body.keep, body.team, body.newsletter, body.linkedin)
    return {
        "id": record_id,
        "status": record.status.value,
        "distribution": record.distribution.model_dump(mode="json"),
    }


@app.post("/records/{record_id}/annotate")
def annotate(record_id: str, body: AnnotateRequest, owner: str = Depends(get_owner),
             p: KnowledgePipeline = Depends(get_pipeline)):
    record = p.annotate_record(
        owner, record_id, body.note, body.highlighted_findings, body.highlighted_quotes,
    )
    return {"id": record_id, "annotations": record.annotations.model_dump(mode="json")}


@app.post("/records/{record_id}/message")
def render_message(record_id: str, body: MessageRequest, owner: str = Depends(get_owner),
                   p: KnowledgePipeline = Depends(get_pipeline)):
    return p.generate_distribution_message(owner, record_id, body.option).to_dict()


@app.post("/records/{record_id}/share")
def share(record_id: str, body: MessageRequest, owner: str = Depends(get_owner),
          p: KnowledgePipeline = Depends(get_pipeline)):
    message, result = p.share_record(owner, record_id, body.option)
    return {"delivery": result.to_dict(), "violations": message.violations}


@app.post("/records/{record_id}/infographic")
def infographic(record_id: str, body: InfographicRequest, owner: str = Depends(get_owner),
                p: KnowledgePipeline = Depends(get_pipeline)):
    return p.generate_infographic(owner, record_id, body.kind, force=body.force).to_dict()


@app.post("/newsletter/draft")
def newsletter_draft(body: NewsletterRequest, owner: str = Depends(get_owner),
                     p: KnowledgePipeline = Depends(get_pipeline)):
    return p.draft_newsletter(owner, body.record_ids, mark_shared=body.mark_shared).to_dict()


@app.get(MEDIA_ROUTE + "/{path:path}")
def media(path: str, p: KnowledgePipeline = Depends(get_pipeline)):
    """Generated images; public so messaging platforms can fetch them."""
    store = p.infographics.media
    resolved = store.resolve(path) if store else None
    if resolved is None or not resolved.is_file():
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(resolved)


@app.post("/deliver")
def deliver(body: dict, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    """Deliver a message previously returned by /records/{id}/message."""
    try:
        message = Message.from_dict(body)
    except KeyError as e:
        raise HTTPException(status_code=400, detail=f"Missing field: {e}")
    # Client-supplied text may have been edited since rendering
    p.validator.check(message)
    return {**p.deliver(owner, message).to_dict(), "violations": message.violations}


@app.post("/batches")
def process_batch(body: BatchRequest, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    return p.process_pending_batch(owner, body.limit).to_dict()


@app.post("/jobs", status_code=202)
async def start_job(owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    job = await p.start_processing_job(owner)
    return job.summary()


@app.get("/jobs/{job_id}")
def get_job(job_id: str, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    return p.get_job(owner, job_id).summary()


@app.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    job = await p.cancel_job(owner, job_id)
    return job.summary()


@app.post("/ask")
def ask(body: AskRequest, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    return p.ask_question(owner, body.question, body.mode).to_dict()


@app.post("/search")
def search(body: SearchRequest, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    results = p.search_semantic(owner, body.query, limit=body.limit, content_types=body.content_types)
    return {"count": len(results), "results": [c.to_dict() for c in results]}


@app.post("/quotes")
def quotes(body: QuoteRequest, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    found = p.find_quotes(owner, body.query, context=body.context, limit=body.count)
    return {"count": len(found), "quotes": found}


@app.post("/images", status_code=201)
def register_image(body: ImageRequest, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    image_id = p.register_image(owner, body.image_url, body.title, body.source_reference, body.mime_type)
    return {"id": image_id, "status": "pending"}


@app.post("/images/{image_id}/summary")
def image_summary(image_id: str, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    image = p.generate_image_summary(owner, image_id)
    return image.model_dump(mode="json", exclude={"embedding"})


@app.post("/images/search")
def search_images(body: ImageSearchRequest, owner: str = Depends(get_owner),
                  p: KnowledgePipeline = Depends(get_pipeline)):
    found = p.find_images(owner, body.query, chart_type=body.chart_type, limit=body.count)
    return {"count": len(found), "images": found}


@app.post("/reindex")
def reindex(missing_only: bool = True, owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    return p.reindex_embeddings(owner, missing_only=missing_only).to_dict()


@app.get("/stats")
def stats(owner: str = Depends(get_owner), p: KnowledgePipeline = Depends(get_pipeline)):
    return p.get_stats(owner)


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Sift server"""
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    config = load_config()
    logger.info("Starting server on %s:%d", config.server.host, config.server.port)
    uvicorn.run(
        "sift.server:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
