"""Novelty and classification decisions."""

from feedwatch.engine.novelty import NoveltyDecision, evaluate, is_novel

__all__ = ["NoveltyDecision", "evaluate", "is_novel"]
