from fastapi import APIRouter, HTTPException, status

from schemas import FactsOut, StateOut
from schemas.facts import Relation
from services.errors import EngineFailure
from services.fact_store import fact_payload
from services.runtime import get_fact_sync_service


route = APIRouter()


@route.get("/sys/state", response_model=StateOut)
async def sys_state() -> StateOut:
    """Report the store state, commit count and watch loop counters."""
    service = get_fact_sync_service()
    return StateOut.model_validate(service.status())


@route.get("/facts/{relation}", response_model=FactsOut)
async def list_facts(relation: Relation) -> FactsOut:
    """Return the committed facts of one relation."""
    service = get_fact_sync_service()
    try:
        snapshot = await service.manager.snapshot(relation)
    except EngineFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    facts = [fact_payload(fact) for fact in snapshot[relation]]
    return FactsOut(relation=relation.value, count=len(facts), facts=facts)
