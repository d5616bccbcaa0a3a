from pydantic import BaseModel, Field
from datetime import datetime

class CachedArticleCreate(BaseModel):
    url: str = Field(min_length=1)
    title: str = ""
    content: str = ""

class CachedArticle(CachedArticleCreate):
    id: str
    cached_at: datetime

    class Config:
        from_attributes = True

class StorageUsage(BaseModel):
    cached_articles: int
    pending_mutations: int
    dead_letters: int
    content_bytes: int
