from __future__ import annotations

import time
from collections import defaultdict
from typing import Dict, List

from snakerooms.persist.base import Leaderboard

MEDALS = ("gold", "silver", "bronze")


class MemoryLeaderboard(Leaderboard):
    """Process-local leaderboard used when no external store is wired in."""

    def __init__(self) -> None:
        self.entries: list[dict] = []
        self.trophies: dict[str, dict[str, int]] = defaultdict(lambda: dict.fromkeys(MEDALS, 0))

    def submit_score(self, username: str, score: int, game_mode: str = "survival") -> None:
        self.entries.append(
            {
                "username": username,
                "score": int(score),
                "game_mode": game_mode,
                "date": int(time.time()),
            }
        )

    def fetch_top(self, limit: int = 15, game_mode: str = "survival") -> List[Dict]:
        rows = [e for e in self.entries if e["game_mode"] == game_mode]
        rows.sort(key=lambda e: (-e["score"], e["date"]))
        return rows[:limit]

    def rank_for_score(self, score: int, game_mode: str = "survival") -> int:
        better = sum(1 for e in self.entries if e["game_mode"] == game_mode and e["score"] > score)
        return better + 1

    def award_trophy(self, username: str, medal: str) -> None:
        if medal not in MEDALS:
            raise ValueError(f"Unknown medal {medal!r}")
        self.trophies[username][medal] += 1

    def trophies_for(self, username: str) -> Dict[str, int]:
        return dict(self.trophies.get(username, dict.fromkeys(MEDALS, 0)))
