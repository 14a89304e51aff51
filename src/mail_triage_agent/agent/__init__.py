"""Run orchestration: batch construction, triage, drafting and the run controller."""

from .batch import BatchEntry, RunBatch, build_batch
from .controller import RunController, RunStatus, RunSummary
from .drafting import DraftOrchestrator
from .triage import IMPORTANCE_ACTIONS, TriageOrchestrator, TriageOutcome

__all__ = [
    "IMPORTANCE_ACTIONS",
    "BatchEntry",
    "DraftOrchestrator",
    "RunBatch",
    "RunController",
    "RunStatus",
    "RunSummary",
    "TriageOrchestrator",
    "TriageOutcome",
    "build_batch",
]
