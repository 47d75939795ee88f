"""Routes for autosaved article drafts.

``new`` stands for an article that has not been created yet.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from newsdesk.dependencies import get_gateway
from newsdesk.schemas import DraftRequest, PublishRequest
from newsdesk.services import drafts
from newsdesk.storage.gateway import PersistenceGateway

router = APIRouter(prefix="/api/admin/drafts", tags=["drafts"])


def _article_ref(article_id: str) -> Optional[str]:
    return None if article_id == "new" else article_id


def _not_found() -> JSONResponse:
    return JSONResponse(content={"detail": "Draft not found"}, status_code=404)


@router.post("/publish")
async def publish(body: PublishRequest, gateway: PersistenceGateway = Depends(get_gateway)):
    """Save the article form and drop the draft it came from."""
    article = await drafts.publish_article(gateway, body.article_id, body.user_id, body.article)
    if article is None:
        return JSONResponse(content={"detail": "Article not found"}, status_code=404)
    return {"data": article.model_dump(mode="json", by_alias=True)}


@router.get("/{article_id}")
async def get_draft(
    article_id: str,
    user_id: str = Query(..., alias="userId", min_length=1),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    draft = await drafts.load_draft(gateway, _article_ref(article_id), user_id)
    if draft is None:
        return _not_found()
    return {"data": draft.model_dump(mode="json", by_alias=True)}


@router.put("/{article_id}")
async def put_draft(
    article_id: str,
    body: DraftRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    draft = await drafts.save_draft(gateway, _article_ref(article_id), body.user_id, body.form_state)
    return {"data": draft.model_dump(mode="json", by_alias=True)}


@router.delete("/{article_id}")
async def delete_draft(
    article_id: str,
    user_id: str = Query(..., alias="userId", min_length=1),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    if not await drafts.clear_draft(gateway, _article_ref(article_id), user_id):
        return _not_found()
    return {"deleted": True}
