from fastapi import APIRouter, BackgroundTasks, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import WebhookRequest

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/item")
async def webhook_item(
    request: Request,
    body: WebhookRequest,
    background_tasks: BackgroundTasks,
    _: None = Depends(verify_api_key),
) -> dict:
    """Accept a document store change notification and update the indexes in the background.

    created and updated events re-index the item; deleted events purge it from both indexes.

    Args:
        request (Request): FastAPI request (provides app.state.indexing_service).
        body (WebhookRequest): JSON body containing item_id and event.
        background_tasks (BackgroundTasks): FastAPI background task queue.
        _ (None): Auth dependency result (unused).

    Returns:
        dict: Acknowledgement payload with status, item_id and event.
    """
    indexing_service = request.app.state.indexing_service
    request.app.state.logging.info("Webhook received: %s item_id=%s", body.event, body.item_id)
    if body.event == "deleted":
        background_tasks.add_task(indexing_service.delete_document, body.item_id)
    else:
        background_tasks.add_task(indexing_service.index_document, body.item_id)
    return {"status": "accepted", "item_id": body.item_id, "event": body.event}
