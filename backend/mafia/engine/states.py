from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from mafia.core.models import Phase


class BasePhaseState(ABC):
    phase: Phase
    timed: bool = True

    @abstractmethod
    def next_phase(self) -> Optional[Phase]:
        pass


class LobbyState(BasePhaseState):
    phase = Phase.LOBBY
    timed = False

    def next_phase(self) -> Optional[Phase]:
        # only the host's start_game leaves the lobby
        return None


class DayDiscussionState(BasePhaseState):
    phase = Phase.DAY_DISCUSSION

    def next_phase(self) -> Optional[Phase]:
        return Phase.DAY_VOTING


class DayVotingState(BasePhaseState):
    phase = Phase.DAY_VOTING

    def next_phase(self) -> Optional[Phase]:
        return Phase.SLEEP


class SleepState(BasePhaseState):
    phase = Phase.SLEEP

    def next_phase(self) -> Optional[Phase]:
        return Phase.DOCTOR


class DoctorState(BasePhaseState):
    phase = Phase.DOCTOR

    def next_phase(self) -> Optional[Phase]:
        return Phase.MAFIA


class MafiaState(BasePhaseState):
    phase = Phase.MAFIA

    def next_phase(self) -> Optional[Phase]:
        return Phase.EXECUTION


class ExecutionState(BasePhaseState):
    phase = Phase.EXECUTION

    def next_phase(self) -> Optional[Phase]:
        return Phase.ANNOUNCEMENT


class AnnouncementState(BasePhaseState):
    phase = Phase.ANNOUNCEMENT

    def next_phase(self) -> Optional[Phase]:
        return Phase.DAY_DISCUSSION


class EndedState(BasePhaseState):
    phase = Phase.ENDED
    timed = False

    def next_phase(self) -> Optional[Phase]:
        return None


STATE_REGISTRY = {
    Phase.LOBBY: LobbyState(),
    Phase.DAY_DISCUSSION: DayDiscussionState(),
    Phase.DAY_VOTING: DayVotingState(),
    Phase.SLEEP: SleepState(),
    Phase.DOCTOR: DoctorState(),
    Phase.MAFIA: MafiaState(),
    Phase.EXECUTION: ExecutionState(),
    Phase.ANNOUNCEMENT: AnnouncementState(),
    Phase.ENDED: EndedState(),
}

DETECTIVE_WINDOW = frozenset({Phase.DAY_DISCUSSION, Phase.DAY_VOTING})
