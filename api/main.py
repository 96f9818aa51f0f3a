"""
FastAPI Server for the Price List Extraction API
"""
import asyncio
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import settings
from graph.state import ExtractionContext
from graph.workflow import workflow
from schemas.product_schemas import ExtractionResult
from utils.llm_client import llm_client
from utils.logger import logger

DISCONNECT_POLL_INTERVAL = 0.25  # seconds


# Request/Response models
class ExtractRequest(BaseModel):
    """Request model for text extraction"""
    text: str = Field(..., description="Text already extracted from the price list document")
    filename_hint: Optional[str] = Field(None, description="Original filename, used for profile detection")


class ExtractRowsRequest(BaseModel):
    """Request model for spreadsheet row extraction"""
    rows: List[Any] = Field(..., description="Rows as header->cell objects or cell arrays")
    filename_hint: Optional[str] = Field(None, description="Original filename, used for profile detection")


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    timestamp: str
    llm_available: bool
    model_fallback_enabled: bool


# Create FastAPI app
app = FastAPI(
    title="Price List Extractor",
    description="Cascading price list extraction with LangGraph, pattern grammars and an LLM fallback",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _run_cancellable(request: Request, run: Callable[..., ExtractionResult], *args) -> ExtractionResult:
    """
    Run a blocking workflow call in the executor

    If the client goes away mid-extraction the request's context is
    cancelled, which aborts its outstanding remote calls.
    """
    context = ExtractionContext()
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, partial(run, *args, context=context))

    while True:
        done, _ = await asyncio.wait({future}, timeout=DISCONNECT_POLL_INTERVAL)
        if done:
            return future.result()
        if await request.is_disconnected():
            logger.warning("Client disconnected, cancelling extraction", request_id=context.request_id)
            context.cancel()
            return await future


@app.get("/", response_model=Dict[str, str])
async def root():
    """Root endpoint"""
    return {
        "service": "Price List Extractor",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        version="1.0.0",
        timestamp=datetime.now(timezone.utc).isoformat(),
        llm_available=llm_client.is_available(),
        model_fallback_enabled=settings.MODEL_FALLBACK_ENABLED
    )


@app.post("/extract", response_model=ExtractionResult)
async def extract_text(payload: ExtractRequest, request: Request):
    """
    Extract product records from price list text

    Failed extractions still answer 200; check ``status``.
    """
    logger.info("Extraction request received", chars=len(payload.text), filename_hint=payload.filename_hint)
    return await _run_cancellable(request, workflow.process, payload.text, payload.filename_hint)


@app.post("/extract-rows", response_model=ExtractionResult)
async def extract_rows(payload: ExtractRowsRequest, request: Request):
    """Extract product records from spreadsheet rows"""
    logger.info("Row extraction request received", rows=len(payload.rows), filename_hint=payload.filename_hint)
    return await _run_cancellable(request, workflow.process_rows, payload.rows, payload.filename_hint)


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting FastAPI server on {settings.API_HOST}:{settings.API_PORT}")

    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD,
        log_level=settings.LOG_LEVEL.lower()
    )
