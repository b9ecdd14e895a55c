"""Domain enumerations for the Booyah Board overlay."""
from __future__ import annotations

from enum import Enum


class TournamentFormat(str, Enum):
    LINEAR = "linear"
    ROUND_ROBIN = "roundRobin"


class PlayerState(int, Enum):
    """Feed `player_state` values the overlay cares about."""
    ALIVE = 1
    KNOCKED = 2
    DEAD = 3


class SequencerPhase(str, Enum):
    """Where the elimination reveal loop currently is."""
    IDLE = "idle"
    SETTLING = "settling"
    HOLDING = "holding"
    COOLDOWN = "cooldown"
    FROZEN = "frozen"
    HALTED = "halted"


class TransitionSignal(str, Enum):
    IN = "TransitionIn"
    OUT = "TransitionOut"


class WriteState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class FetchMode(str, Enum):
    SILENT = "silent"
    EXPLICIT = "explicit"
