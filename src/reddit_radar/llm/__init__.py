"""LLM classifier for triaging and evaluating posts."""

from .classifier import ClassifierClient

__all__ = ["ClassifierClient"]
