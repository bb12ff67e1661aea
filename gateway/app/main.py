#!/usr/bin/env python3
"""
Main FastAPI application for the chat gateway.

Every route is served at the root and again under /api.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Config
from .controller import ChatOrchestrator
from .session import SessionSweeper
from ..schemas.io_models import ChatRequest, CommLogRequest, LicenseKeyRequest, SessionRequest, TxqlChatRequest
from ..utils.logger import get_logger

logger = get_logger("api")

orchestrator = ChatOrchestrator()
sweeper = SessionSweeper(orchestrator.store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Config.debug_print()
    sweeper.start()
    yield
    sweeper.stop()


# Initialize FastAPI app
app = FastAPI(
    title="Chat Gateway API",
    description="Routes natural-language questions to SQL generation or call analytics",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

router = APIRouter()


@router.post("/chat")
def chat(request: ChatRequest):
    """Unified chat endpoint: greeting, TXQL or AI-Voice."""
    try:
        status, body = orchestrator.handle(request.question, request.user_id)
    except Exception as e:
        logger.exception(f"[ROUTER] unexpected error in chat: {e}")
        status, body = 500, {"success": False, "error": "An unexpected error occurred",
                             "friendlyError": "Something went wrong. Please try again.",
                             "technicalError": str(e)}
    return JSONResponse(status_code=status, content=body)


@router.post("/txql/chat")
def txql_chat(request: TxqlChatRequest):
    status, body = orchestrator.handle_txql(request.question, request.user_id, request.max_retries)
    return JSONResponse(status_code=status, content=body)


@router.post("/aivoice/license-keys")
def license_keys(request: LicenseKeyRequest):
    status, body = orchestrator.license_key_report(request.start_date, request.end_date, request.license_key)
    return JSONResponse(status_code=status, content=body)


@router.post("/commlog/analyze")
def commlog_analyze(request: CommLogRequest):
    status, body = orchestrator.analyze_commlog(request.pat_num, request.start_date, request.end_date)
    return JSONResponse(status_code=status, content=body)


@router.get("/txql/session")
def get_session(userId: str = "anonymous"):
    return orchestrator.session_info(userId)


@router.delete("/txql/session")
def clear_session(request: SessionRequest):
    return orchestrator.clear_session(request.user_id)


@router.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "activeSessions": orchestrator.store.count(),
        "systems": {
            "aivoice": "AI Voice Call Analysis",
            "txql": "SQL Database Queries (with execution)",
            "greeting": "Greeting Handler",
        },
    }


app.include_router(router)
app.include_router(router, prefix="/api")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=Config.HOST, port=Config.PORT)
