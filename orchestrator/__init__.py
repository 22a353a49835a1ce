"""
Orchestration package for coordinating sync runs.

Sequences the run phases: state → preflight → hierarchy → users → assets →
pages → state → report.
"""

from .state_store import StateStore
from .sync_report import SyncReport
from .sync_orchestrator import SyncOrchestrator

__all__ = [
    'SyncOrchestrator',
    'SyncReport',
    'StateStore'
]
