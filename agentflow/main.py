"""
AgentFlow - FastAPI Application Entry Point.

Flow management and execution API for AI chat agent automations.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from agentflow.config import settings
from agentflow.api.routes import credentials, flows
from agentflow.nodes import node_registry


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Node handlers: {[h['node_type'] for h in node_registry.list_handlers()]}")
    
    yield
    
    logger.info("Shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## Flow Execution API

Define automations for AI chat agents and run them.

### Node types
- **Triggers** (`trigger_*`): entry point, passes the inbound input through
- **ai_agent**: AI completion of the current message
- **http_request**, **database**: outbound calls with stored credentials
- **condition**: branches on `true` / `false` handles
- **delay**, **set_variable**, **send_message**

### Quick Start
1. Store credentials: `POST /credentials`
2. Save a flow: `POST /flows`
3. Run it: `POST /flows/{flow_id}/execute`
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
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


# Include routers
app.include_router(flows.router)
app.include_router(credentials.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Flow execution engine for AI chat agents",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "flows": "/flows",
            "credentials": "/credentials",
            "execute": "/flows/{flow_id}/execute",
        },
    }


@app.get("/health", tags=["Root"])
async def health():
    """Health check endpoint."""
    from agentflow.storage.memory import credential_storage, flow_storage
    
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "flows_count": len(flow_storage),
        "credentials_count": len(credential_storage),
        "node_handlers": len(node_registry),
    }


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )
