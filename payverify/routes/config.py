"""Configuration endpoints for reading and updating weights and thresholds."""

import logging

from fastapi import APIRouter, Request

from payverify.models import VerificationConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/config", response_model=VerificationConfig)
async def get_config(request: Request) -> VerificationConfig:
    """Return the current verification configuration."""
    return request.app.state.config


@router.put("/config", response_model=VerificationConfig)
async def update_config(
    new_config: VerificationConfig,
    request: Request,
) -> VerificationConfig:
    """Replace the verification configuration.

    The engine's reference is swapped as well, so the next verification
    is scored with the new weights. Stored assessments are not rescored.
    """
    request.app.state.config = new_config
    request.app.state.engine.config = new_config
    logger.info("Verification config replaced")
    return new_config
