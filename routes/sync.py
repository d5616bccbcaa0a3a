from fastapi import APIRouter, Depends, HTTPException, Request, status
from models.mutation import (
    ConnectivityUpdate,
    DrainReport,
    MutationCreate,
    MutationResubmit,
    QueuedMutation,
)
from utils.errors import MutationNotFoundError, MutationValidationError, QueueStorageError
from utils.sync_queue import SyncQueue
from typing import List

router = APIRouter()

def get_sync_queue(request: Request) -> SyncQueue:
    """Dependency returning the process-wide queue built at startup."""
    return request.app.state.sync_queue

@router.post("/mutations", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_mutation(body: MutationCreate, queue: SyncQueue = Depends(get_sync_queue)):
    """Save a change locally so it can be replayed once the server is reachable."""
    try:
        mutation_id = queue.enqueue(body.kind, body.payload)
    except MutationValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QueueStorageError:
        raise HTTPException(
            status_code=status.HTTP_507_INSUFFICIENT_STORAGE,
            detail="Could not save offline. Your change was not saved.",
        )
    return {"id": mutation_id, "pending": queue.get_pending_count()}

@router.post("/drain", response_model=DrainReport)
async def drain(queue: SyncQueue = Depends(get_sync_queue)):
    return await queue.drain()

@router.get("/pending", response_model=List[QueuedMutation])
async def list_pending(queue: SyncQueue = Depends(get_sync_queue)):
    return queue.list_pending()

@router.get("/pending/count")
async def pending_count(queue: SyncQueue = Depends(get_sync_queue)):
    """Badge numbers for the UI."""
    return {
        "count": queue.get_pending_count(),
        "dead_letters": queue.get_dead_letter_count(),
        "syncing": queue.is_draining,
    }

@router.get("/dead-letters", response_model=List[QueuedMutation])
async def list_dead_letters(queue: SyncQueue = Depends(get_sync_queue)):
    return queue.list_dead_letters()

@router.post("/dead-letters/{mutation_id}/resubmit", response_model=QueuedMutation)
async def resubmit_dead_letter(
    mutation_id: str,
    body: MutationResubmit,
    queue: SyncQueue = Depends(get_sync_queue),
):
    """Put a rejected change back in the queue, optionally with an edited payload."""
    try:
        return queue.resubmit(mutation_id, body.payload)
    except MutationNotFoundError:
        raise HTTPException(status_code=404, detail="Queued mutation not found")
    except MutationValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.delete("/dead-letters/{mutation_id}")
async def discard_dead_letter(mutation_id: str, queue: SyncQueue = Depends(get_sync_queue)):
    try:
        queue.discard(mutation_id)
    except MutationNotFoundError:
        raise HTTPException(status_code=404, detail="Queued mutation not found")
    except MutationValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"discarded": mutation_id}

@router.get("/connectivity")
async def get_connectivity(queue: SyncQueue = Depends(get_sync_queue)):
    return {"online": queue.connectivity.is_online()}

@router.post("/connectivity")
async def set_connectivity(body: ConnectivityUpdate, queue: SyncQueue = Depends(get_sync_queue)):
    """Feed the host's network signal in; going online starts a background drain."""
    changed = queue.connectivity.set_online(body.online)
    return {"online": queue.connectivity.is_online(), "changed": changed}
