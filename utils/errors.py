from __future__ import annotations


class ReadLtrError(Exception):
    """Base class for errors raised by the offline core."""


class InvalidQualityError(ReadLtrError, ValueError):
    """Recall quality outside the 0-5 scale."""

    def __init__(self, quality: object):
        super().__init__(f"quality must be an integer between 0 and 5, got {quality!r}")
        self.quality = quality


class MutationValidationError(ReadLtrError, ValueError):
    """Mutation rejected before it reaches the durable queue."""


class QueueStorageError(ReadLtrError):
    """The local store could not persist a mutation; the change is not saved."""


class MutationNotFoundError(ReadLtrError, KeyError):
    def __init__(self, mutation_id: str):
        super().__init__(mutation_id)
        self.mutation_id = mutation_id

    def __str__(self) -> str:
        return f"Queued mutation not found: {self.mutation_id}"


class CardNotFoundError(ReadLtrError, KeyError):
    def __init__(self, card_id: str):
        super().__init__(card_id)
        self.card_id = card_id

    def __str__(self) -> str:
        return f"Review card not found: {self.card_id}"
