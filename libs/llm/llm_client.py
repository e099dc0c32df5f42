from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class LLMClient(ABC):
    """Abstract interface for language model interactions."""

    @abstractmethod
    def summarize_week(self, bullet_summary: str) -> Optional[str]:
        """Rewrite a weekly bullet summary as short prose.

        ``None`` means the model is not configured; callers keep the bullets.
        """
