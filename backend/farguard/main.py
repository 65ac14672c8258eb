"""
Main FastAPI Application
FarGuard Backend - token and NFT approval discovery and revocation bookkeeping
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from farguard.config import settings
from farguard.errors import ClientInputError
from farguard.routers import approvals as approvals_router
from farguard.services.approval_store import get_store
from farguard.services.etherscan_client import close_etherscan_client
import logging
import time

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.api_debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Select the approval store at startup, release the explorer client on shutdown"""
    store = get_store()
    logger.info(f"✓ Approval store ready: {type(store).__name__}")
    logger.info("Backend ready!")
    yield
    await close_etherscan_client()

# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    debug=settings.api_debug,
    lifespan=lifespan
)

# Add request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests and responses"""
    start_time = time.time()

    logger.info(f"→ {request.method} {request.url.path} | Client: {request.client.host if request.client else 'unknown'}")

    try:
        response = await call_next(request)
        duration = time.time() - start_time
        logger.info(f"← {request.method} {request.url.path} | Status: {response.status_code} | Duration: {duration:.2f}s")
        return response
    except Exception as e:
        duration = time.time() - start_time
        logger.exception(f"✗ {request.method} {request.url.path} | Error after {duration:.2f}s: {str(e)}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"Internal server error: {str(e)}"}
        )

@app.exception_handler(ClientInputError)
async def client_input_error_handler(request: Request, exc: ClientInputError):
    """Unknown chain or malformed address: rejected before any work"""
    logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(approvals_router.router)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "name": settings.api_title,
        "version": settings.api_version,
        "status": "ready"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    try:
        store = get_store()
        return {
            "status": "healthy",
            "storage": type(store).__name__
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }
