"""Validation of generated text."""

from .language import LanguageValidator

__all__ = ["LanguageValidator"]
