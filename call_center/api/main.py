"""FastAPI application for call ingestion, call administration and customer data."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.config import Settings, get_settings
from ..core.exceptions import (
    AnalysisInProgressError,
    CallAlreadyProcessedError,
    CallValidationError,
    ProviderConfigError,
    RateLimitExceededError,
    ReconciliationError,
    RetellAPIError,
)
from ..core.models import (
    BatchRunResult,
    CallDocument,
    CallRecord,
    Customer,
    CustomerKnowledgeBase,
    ProcessedCall,
    QuestionStats,
    ScheduledEventRecord,
)
from ..services.call_processor import CallProcessor
from ..services.customer_service import CustomerRepository
from ..services.retell_client import RetellClient

logger = logging.getLogger(__name__)
logging.basicConfig(level=get_settings().log_level.upper())

# Global processor instance
_processor: Optional[CallProcessor] = None


def get_call_processor() -> CallProcessor:
    """Get or create the shared call processor."""
    global _processor
    if _processor is None:
        _processor = CallProcessor()
    return _processor


def get_retell_client(processor: CallProcessor = Depends(get_call_processor)) -> RetellClient:
    return processor.client


def get_repository(processor: CallProcessor = Depends(get_call_processor)) -> CustomerRepository:
    return processor.repository


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    processor: Optional[CallProcessor] = None
    if settings.auto_process_calls:
        processor = get_call_processor()
        processor.start()
    else:
        logger.info("AUTO_PROCESS_CALLS disabled, calls are processed on request only")

    yield

    logger.info("Shutting down...")
    if processor is not None:
        await processor.stop()
        await processor.client.close()
        logger.info("✅ Call processor stopped")


app = FastAPI(title="Call Center Pipeline", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RetellAPIError)
async def retell_error_handler(request: Request, exc: RetellAPIError) -> JSONResponse:
    code = status.HTTP_404_NOT_FOUND if exc.status_code == 404 else status.HTTP_502_BAD_GATEWAY
    return JSONResponse({"detail": str(exc)}, status_code=code)


@app.exception_handler(httpx.HTTPError)
async def http_error_handler(request: Request, exc: httpx.HTTPError) -> JSONResponse:
    logger.error(f"Retell request failed: {exc}")
    return JSONResponse({"detail": f"Retell request failed: {exc}"}, status_code=status.HTTP_502_BAD_GATEWAY)


class QuestionStatisticsRequest(BaseModel):
    """Payload for question statistics."""

    questions: List[str] = Field(..., min_length=1, description="Question catalog to count")


class StartCallRequest(BaseModel):
    """Payload for making an outbound call."""

    to_number: str = Field(..., description="E.164 formatted phone number, e.g. +15551234567")
    from_number: Optional[str] = Field(default=None, description="Defaults to RETELL_FROM_NUMBER")
    agent_id: Optional[str] = Field(default=None, description="Defaults to RETELL_AGENT_ID")
    metadata: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


@app.get("/health")
async def health(processor: CallProcessor = Depends(get_call_processor)) -> Dict[str, Any]:
    """Health check with processor status and cumulative counters."""
    return {
        "status": "ok",
        "processor": {
            "running": processor.is_running,
            "processing": processor.is_processing,
            "stats": processor.stats,
        },
    }


@app.post("/process-calls", response_model=BatchRunResult)
async def process_calls(processor: CallProcessor = Depends(get_call_processor)) -> BatchRunResult:
    """Run one batch now."""
    return await processor.run_batch()


@app.post("/process-call/{call_id}", response_model=ProcessedCall)
async def process_call(
    call_id: str,
    processor: CallProcessor = Depends(get_call_processor),
) -> ProcessedCall:
    """Process a specific call by call_id."""
    logger.info(f"Processing specific call: {call_id}")
    try:
        return await processor.process_single_call(call_id)
    except CallValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except CallAlreadyProcessedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except (RetellAPIError, httpx.HTTPError) as exc:
        logger.error(f"Failed to fetch call {call_id}: {exc}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except ReconciliationError as exc:
        logger.error(f"Failed to save call {call_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc


@app.post("/question-statistics", response_model=List[QuestionStats])
async def question_statistics(
    payload: QuestionStatisticsRequest,
    processor: CallProcessor = Depends(get_call_processor),
) -> List[QuestionStats]:
    """Count how often each question is asked across recent calls."""
    try:
        return await processor.get_question_statistics(payload.questions)
    except AnalysisInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RateLimitExceededError as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(exc),
            headers={"Retry-After": str(exc.retry_after)},
        ) from exc
    except ProviderConfigError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------


@app.get("/calls", response_model=List[CallRecord])
async def list_calls(
    agent_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=1000),
    client: RetellClient = Depends(get_retell_client),
) -> List[CallRecord]:
    return await client.list_calls(agent_id=agent_id, limit=limit)


@app.get("/calls/active", response_model=List[CallRecord])
async def active_calls(
    client: RetellClient = Depends(get_retell_client),
    settings: Settings = Depends(get_settings),
) -> List[CallRecord]:
    """Ongoing calls for the configured target agents (all agents if none)."""
    return await client.get_active_calls(settings.target_agent_id_list)


@app.get("/calls/{call_id}", response_model=CallRecord)
async def get_call(call_id: str, client: RetellClient = Depends(get_retell_client)) -> CallRecord:
    return await client.get_call(call_id)


@app.post("/calls", response_model=CallRecord, status_code=status.HTTP_202_ACCEPTED)
async def start_call(
    payload: StartCallRequest,
    client: RetellClient = Depends(get_retell_client),
) -> CallRecord:
    """Trigger an outbound call to the provided number."""
    try:
        return await client.create_phone_call(
            payload.to_number,
            from_number=payload.from_number,
            agent_id=payload.agent_id,
            metadata=payload.metadata,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@app.post("/calls/{call_id}/end")
async def end_call(call_id: str, client: RetellClient = Depends(get_retell_client)) -> Dict[str, str]:
    await client.end_call(call_id)
    return {"status": "ending", "call_id": call_id}


# ---------------------------------------------------------------------------
# Agents & phone numbers
# ---------------------------------------------------------------------------


@app.get("/agents")
async def list_agents(client: RetellClient = Depends(get_retell_client)) -> List[Dict[str, Any]]:
    return await client.list_agents()


@app.get("/agents/{agent_id}")
async def get_agent(agent_id: str, client: RetellClient = Depends(get_retell_client)) -> Dict[str, Any]:
    return await client.get_agent(agent_id)


@app.patch("/agents/{agent_id}")
async def update_agent(
    agent_id: str,
    updates: Dict[str, Any] = Body(...),
    client: RetellClient = Depends(get_retell_client),
) -> Dict[str, Any]:
    """Update assistant configuration (voice, prompt, language...)."""
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates provided")
    return await client.update_agent(agent_id, updates)


@app.get("/phone-numbers")
async def list_phone_numbers(client: RetellClient = Depends(get_retell_client)) -> List[Dict[str, Any]]:
    return await client.list_phone_numbers()


# ---------------------------------------------------------------------------
# Persisted data
# ---------------------------------------------------------------------------


@app.get("/customers", response_model=List[Customer])
async def list_customers(
    limit: int = Query(default=100, ge=1, le=1000),
    repository: CustomerRepository = Depends(get_repository),
) -> List[Customer]:
    return await repository.get_all_customers(limit=limit)


@app.delete("/customers/{customer_id}")
async def delete_customer(
    customer_id: str,
    repository: CustomerRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Delete a customer and their call records."""
    deleted_calls = await repository.delete_customer(customer_id)
    return {"status": "deleted", "customer_id": customer_id, "deleted_calls": deleted_calls}


@app.get("/customers/{phone_number}/knowledge-base", response_model=CustomerKnowledgeBase)
async def customer_knowledge_base(
    phone_number: str,
    repository: CustomerRepository = Depends(get_repository),
) -> CustomerKnowledgeBase:
    return await repository.get_customer_knowledge_base(phone_number)


@app.get("/customers/{phone_number}/context")
async def customer_context(
    phone_number: str,
    repository: CustomerRepository = Depends(get_repository),
) -> Dict[str, Optional[str]]:
    """Context to hand the voice agent before calling this number."""
    context = await repository.get_customer_context_for_next_call(phone_number)
    return {"phone_number": phone_number, "context": context}


@app.get("/events/upcoming", response_model=List[ScheduledEventRecord])
async def upcoming_events(
    limit: int = Query(default=50, ge=1, le=500),
    repository: CustomerRepository = Depends(get_repository),
) -> List[ScheduledEventRecord]:
    return await repository.get_upcoming_scheduled_events(limit=limit)


@app.get("/call-records", response_model=List[CallDocument])
async def call_records(
    limit: int = Query(default=1000, ge=1, le=5000),
    repository: CustomerRepository = Depends(get_repository),
) -> List[CallDocument]:
    return await repository.get_all_call_records(limit=limit)
