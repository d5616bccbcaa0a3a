from .review_card import ReviewCard, ReviewCardCreate, ReviewSubmit, ScheduleResult
from .mutation import (
    ConnectivityUpdate,
    DrainReport,
    MutationCreate,
    MutationKind,
    MutationResubmit,
    MutationStatus,
    QueuedMutation,
)
from .article import CachedArticle, CachedArticleCreate, StorageUsage

__all__ = [
    'ReviewCard', 'ReviewCardCreate', 'ReviewSubmit', 'ScheduleResult',
    'ConnectivityUpdate', 'DrainReport', 'MutationCreate', 'MutationKind',
    'MutationResubmit', 'MutationStatus', 'QueuedMutation',
    'CachedArticle', 'CachedArticleCreate', 'StorageUsage',
]
