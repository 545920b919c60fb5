"""Main FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from reconstructor import __version__
from reconstructor.config import settings
from reconstructor.api import reconstructions

app = FastAPI(
    title="VES Replay Reconstructor",
    description="Rebuilds rrweb event streams from PostHog session recording snapshots",
    version=__version__,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(reconstructions.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "VES Replay Reconstructor",
        "version": __version__,
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
