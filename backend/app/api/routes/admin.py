"""
Operational endpoints for the intent stage.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.registration import RestageResponse
from app.services.intent_stage import IntentStage
from app.services.strategy_factory import get_intent_stage

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/intents/restage", response_model=RestageResponse)
async def restage_intents_endpoint(
    db: AsyncSession = Depends(get_db),
    stage: IntentStage = Depends(get_intent_stage),
):
    """Re-stage pending registrations that lost their intent (e.g. after a Redis flush)."""
    restaged = await stage.restage_pending(db)
    return RestageResponse(restaged=restaged)
