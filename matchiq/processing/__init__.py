"""Processing module for text and value normalization."""

from matchiq.processing.normalizer import Normalizer

__all__ = ["Normalizer"]
