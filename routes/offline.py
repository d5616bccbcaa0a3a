from fastapi import APIRouter, Depends, HTTPException
from db.database import get_db
from models.article import CachedArticle, CachedArticleCreate, StorageUsage
from utils import article_cache
from typing import List

router = APIRouter()

@router.get("/articles", response_model=List[CachedArticle])
async def list_articles(conn = Depends(get_db)):
    return article_cache.list_cached_articles(conn)

@router.put("/articles", response_model=CachedArticle)
async def cache_article(body: CachedArticleCreate, conn = Depends(get_db)):
    """Keep an article readable without a connection."""
    return article_cache.cache_article(conn, body)

@router.get("/articles/{article_id}", response_model=CachedArticle)
async def get_article(article_id: str, conn = Depends(get_db)):
    article = article_cache.get_cached_article(conn, article_id)
    if not article:
        raise HTTPException(status_code=404, detail="Article not cached")
    return article

@router.delete("/articles/{article_id}")
async def remove_article(article_id: str, conn = Depends(get_db)):
    if not article_cache.remove_cached_article(conn, article_id):
        raise HTTPException(status_code=404, detail="Article not cached")
    return {"removed": article_id}

@router.get("/usage", response_model=StorageUsage)
async def usage(conn = Depends(get_db)):
    return article_cache.storage_usage(conn)

@router.delete("/data")
async def clear_data(conn = Depends(get_db)):
    """Drop every cached article and queued change (logout / reset)."""
    article_cache.clear_offline_data(conn)
    return {"cleared": True}
