"""Reconciliation stages: tag window, digests, dedup, notification and the pass loop."""

from __future__ import annotations

from .deadline import Deadline
from .dedup import filter_known
from .digests import resolve_digests
from .loop import ReconciliationLoop, SourceReconciler
from .notify import NotificationReport, build_payload, dispatch_notifications
from .window import DEFAULT_TAG_WINDOW, select_tag_window

__all__ = [
    "DEFAULT_TAG_WINDOW",
    "Deadline",
    "NotificationReport",
    "ReconciliationLoop",
    "SourceReconciler",
    "build_payload",
    "dispatch_notifications",
    "filter_known",
    "resolve_digests",
    "select_tag_window",
]
