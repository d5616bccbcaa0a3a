from fastapi import APIRouter, Depends, HTTPException, status
from db.database import get_db
from models.review_card import ReviewCard, ReviewCardCreate, ReviewSubmit
from utils.errors import CardNotFoundError, InvalidQualityError
from utils import review_store
from config import get_config_value
from typing import List

router = APIRouter()

@router.post("/cards", response_model=ReviewCard, status_code=status.HTTP_201_CREATED)
async def schedule_highlight(body: ReviewCardCreate, conn = Depends(get_db)):
    """Schedule a highlight for review; returns the existing card if already scheduled."""
    ease = get_config_value("review", "default_ease_factor", 2.5)
    return review_store.schedule_highlight(conn, body.source_ref, ease_factor=ease)

@router.get("/cards", response_model=List[ReviewCard])
async def list_cards(conn = Depends(get_db)):
    return review_store.list_cards(conn)

@router.get("/cards/{card_id}", response_model=ReviewCard)
async def get_card(card_id: str, conn = Depends(get_db)):
    card = review_store.get_card(conn, card_id)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    return card

@router.get("/due", response_model=List[ReviewCard])
async def due_cards(conn = Depends(get_db)):
    """Cards due now, oldest due first."""
    return review_store.list_due_cards(conn)

@router.get("/due/count")
async def due_count(conn = Depends(get_db)):
    return {"count": review_store.due_count(conn)}

@router.post("/cards/{card_id}/submit", response_model=ReviewCard)
async def submit_review(card_id: str, body: ReviewSubmit, conn = Depends(get_db)):
    """Record a 0-5 recall rating and reschedule the card."""
    try:
        return review_store.record_review(conn, card_id, body.quality)
    except CardNotFoundError:
        raise HTTPException(status_code=404, detail="Card not found")
    except InvalidQualityError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.delete("/sources/{source_ref}")
async def delete_source_cards(source_ref: str, conn = Depends(get_db)):
    """Cascade hook for a deleted highlight."""
    return {"deleted": review_store.delete_cards_for_source(conn, source_ref.strip())}
