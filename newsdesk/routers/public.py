"""Public routes: reader poll, newsletter sign-up and health check."""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from newsdesk.dependencies import client_fingerprint, get_gateway
from newsdesk.records import Poll
from newsdesk.schemas import VoteRequest
from newsdesk.services import content
from newsdesk.storage.gateway import PersistenceGateway

router = APIRouter(tags=["public"])


def _public_poll(poll: Poll, fingerprint: str) -> dict:
    # Voter fingerprints never leave the server
    data = poll.model_dump(mode="json", by_alias=True, exclude={"voters_seen"})
    data["hasVoted"] = fingerprint in poll.voters_seen
    return data


@router.get("/api/poll")
async def get_poll(
    fingerprint: str = Depends(client_fingerprint),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """The active poll, or ``null`` when none is running."""
    poll = await content.active_poll(gateway)
    return {"data": _public_poll(poll, fingerprint) if poll else None}


@router.post("/api/poll/vote")
async def vote(
    body: VoteRequest,
    fingerprint: str = Depends(client_fingerprint),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    poll = await content.vote(gateway, fingerprint, body.option_index)
    if poll is None:
        return JSONResponse(content={"detail": "No active poll"}, status_code=404)
    return {"data": _public_poll(poll, fingerprint)}


@router.post("/api/newsletter")
async def newsletter_signup(
    email: Optional[str] = Body(default=None, embed=True),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    _, created = await content.subscribe(gateway, email or "")
    if not created:
        return {"message": "This address is already subscribed."}
    return JSONResponse(content={"message": "Subscribed. Thank you!"}, status_code=201)


@router.get("/health")
async def health(gateway: PersistenceGateway = Depends(get_gateway)):
    return {"status": "ok", "backend": gateway.kind().value}
