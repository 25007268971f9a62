from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from mafia.core.models import Role, RoomSnapshot


class SkillStrategy(ABC):
    role: Role

    @abstractmethod
    def validate(self, snapshot: RoomSnapshot, actor_id: str, target_id: Optional[str]) -> None:
        pass

    @abstractmethod
    def apply(self, snapshot: RoomSnapshot, actor_id: str, target_id: Optional[str]) -> Optional[dict]:
        pass
