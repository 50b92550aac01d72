"""UPI Payment Verification API.

Verifies that a settlement between two users was actually paid, from a
screenshot (or its OCR transcript) of the UPI payment. Scores fraud
risk, routes each attempt to auto-verification, receiver confirmation
or manual review, and keeps a full audit trail.

Run with:
    python3 -m uvicorn payverify.main:app --host 0.0.0.0 --port 8000
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict

from fastapi import FastAPI

from payverify.errors import add_error_handlers
from payverify.extraction.ocr import TesseractExtractor
from payverify.models import VerificationConfig
from payverify.routes import audit, config, stats, verification
from payverify.storage.memory import MemoryStore
from payverify.verification.engine import VerificationEngine

# Resolve the data/ directory relative to this file so the server works
# regardless of which directory uvicorn is launched from.
DATA_DIR = Path(__file__).parent.parent / "data"

logging.basicConfig(
    level=os.environ.get("PAYVERIFY_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="UPI Payment Verification API",
    description=(
        "Verifies settlement payments from UPI screenshots. Extracts the "
        "payment details, scores fraud risk and tracks each verification "
        "through receiver confirmation or manual review."
    ),
    version="1.0.0",
)
add_error_handlers(app)


def load_config(path: Path) -> VerificationConfig:
    """Load tunable weights and thresholds (or use defaults)."""
    if path.exists():
        with open(path, "r") as f:
            return VerificationConfig(**json.load(f))
    logger.info("No config at %s, using defaults", path)
    return VerificationConfig()


@app.on_event("startup")
async def startup() -> None:
    """Load configuration and initialize the verification engine."""
    verification_config = load_config(DATA_DIR / "verification_config.json")

    # Initialize the in-memory store and verification engine
    store = MemoryStore(initial_trust_score=verification_config.initial_trust_score)
    engine = VerificationEngine(
        store=store,
        config=verification_config,
        extractor=TesseractExtractor(),
    )

    # Attach to app state for dependency injection in routes
    app.state.engine = engine
    app.state.store = store
    app.state.config = verification_config
    logger.info("Verification engine ready")


# Mount all API routers
app.include_router(verification.router)
app.include_router(stats.router)
app.include_router(audit.router)
app.include_router(config.router)


@app.get("/health")
async def health_check() -> Dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "healthy"}
