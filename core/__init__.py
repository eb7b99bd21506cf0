"""
Text post-processing for recognizer output.
"""
from core.deduplication import deduplicate

__all__ = ["deduplicate"]
