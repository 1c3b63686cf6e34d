from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List


class Leaderboard(ABC):
    """Abstract interface to the external score and trophy store."""

    @abstractmethod
    def submit_score(self, username: str, score: int, game_mode: str = "survival") -> None:
        raise NotImplementedError

    @abstractmethod
    def fetch_top(self, limit: int = 15, game_mode: str = "survival") -> List[Dict]:
        raise NotImplementedError

    @abstractmethod
    def rank_for_score(self, score: int, game_mode: str = "survival") -> int:
        raise NotImplementedError

    @abstractmethod
    def award_trophy(self, username: str, medal: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def trophies_for(self, username: str) -> Dict[str, int]:
        raise NotImplementedError
