"""Interview session: lifecycle, turn-taking, interruption, reconciliation and event log"""

from .event_log import EventLogAggregator, RealtimeEventLogEntry
from .editor import EditorBuffer
from .instructions import FEEDBACK_PROMPT, INSTRUCTIONS, InterviewConfig, build_seed_instruction
from .interruption import InterruptionCoordinator
from .turn_taking import TurnMode, TurnState, TurnTakingController
from .reconciler import ConversationReconciler
from .controller import Session, SessionController, SessionStatus

__all__ = [
    "EventLogAggregator",
    "RealtimeEventLogEntry",
    "EditorBuffer",
    "FEEDBACK_PROMPT",
    "INSTRUCTIONS",
    "InterviewConfig",
    "build_seed_instruction",
    "InterruptionCoordinator",
    "TurnMode",
    "TurnState",
    "TurnTakingController",
    "ConversationReconciler",
    "Session",
    "SessionController",
    "SessionStatus",
]
