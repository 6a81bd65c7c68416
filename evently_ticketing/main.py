"""FastAPI application setup and configuration."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from evently_ticketing.config import settings
from evently_ticketing.api import api_router
from evently_ticketing.database import init_database, close_database
from evently_ticketing.middleware import ErrorHandlerMiddleware, LoggingMiddleware
from evently_ticketing.utils.health_check import get_health_status
from evently_ticketing.utils.logging_config import setup_logging

setup_logging(
    log_level="DEBUG" if settings.debug else settings.log_level,
    log_file=settings.log_file or ("logs/evently.log" if settings.environment == "production" else None),
    enable_json_logging=settings.enable_json_logging or settings.environment == "production",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Evently Ticketing service")
    await init_database()
    yield
    logger.info("Shutting down Evently Ticketing service")
    await close_database()


app = FastAPI(
    title="Evently Ticketing API",
    description="""
    ## Evently Ticketing

    Event ticketing backend: organizers publish events with seat layouts,
    attendees book and pay, and door staff scan QR tickets at check-in.

    ### Key Features

    * **Events**: Create, publish and manage events and their door staff
    * **Seats**: Generated seat layouts with automatic allocation
    * **Bookings**: Capacity-safe booking with optimistic version checks
    * **Payments**: Gateway orders, signature verification and failure recording
    * **Tickets**: Encrypted QR codes, PNG images and printable PDFs
    * **Verification**: Door scanning with check-in and an audit trail
    * **Statistics**: Sales, revenue and check-in figures for organizers

    ### Authentication

    Requests carry a bearer token issued by the identity provider:
    `Authorization: Bearer <access_token>`. Profiles are created on first use.

    ### Error Handling

    Errors are returned as:

    ```json
    {
      "error": {
        "code": "ERROR_CODE",
        "message": "Human readable error message",
        "details": {},
        "suggestions": []
      }
    }
    ```
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "users", "description": "Profile of the authenticated user"},
        {"name": "events", "description": "Event management, listing and door staff"},
        {"name": "seats", "description": "Seat layout configuration and availability"},
        {"name": "bookings", "description": "Ticket booking and cancellation"},
        {"name": "payments", "description": "Payment orders, verification and failures"},
        {"name": "tickets", "description": "Tickets, QR codes and PDF downloads"},
        {"name": "verification", "description": "Door scanning and check-in"},
        {"name": "statistics", "description": "Organizer dashboard figures"},
        {"name": "health", "description": "System health and monitoring endpoints"}
    ],
    lifespan=lifespan,
)

# Logging middleware is added first so it sits inside the error handler
app.add_middleware(
    LoggingMiddleware,
    log_requests=settings.enable_request_logging
)

app.add_middleware(
    ErrorHandlerMiddleware,
    debug=settings.debug
)

if settings.debug:
    # Wildcard origins cannot be combined with credentials
    cors_origins = ["*"]
    cors_allow_credentials = False
else:
    cors_origins = settings.cors_origins
    cors_allow_credentials = settings.cors_allow_credentials

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    expose_headers=settings.cors_expose_headers
)

app.include_router(api_router)


@app.get("/", tags=["health"])
async def root():
    """Basic information about the API."""
    return {
        "message": "Evently Ticketing API",
        "version": "1.0.0",
        "docs_url": "/docs",
        "redoc_url": "/redoc",
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Basic health check endpoint.

    Use this endpoint for simple uptime monitoring.
    """
    return {"status": "healthy", "service": "evently-ticketing"}


@app.get("/health/detailed", tags=["health"])
async def detailed_health_check():
    """
    Detailed health check with service dependencies.

    Reports database and Redis connectivity plus circuit breaker state.
    """
    return await get_health_status()
