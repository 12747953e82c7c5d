"""
SyndiFeed Syndication Module
============================

Reconciliation of upstream feeds against the local store.
"""

from .decisions import ItemAction, ItemContent, Decision, build_content, decide, plan_expirations
from .groups import SourceGroupReconciler
from .reconciler import ItemReconciler
from .sweeper import ExpirySweeper
from .visibility import VisibilityFilter

__all__ = [
    "ItemAction",
    "ItemContent",
    "Decision",
    "build_content",
    "decide",
    "plan_expirations",
    "SourceGroupReconciler",
    "ItemReconciler",
    "ExpirySweeper",
    "VisibilityFilter",
]
