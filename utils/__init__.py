"""Utility package initialization and public exports."""

from .url import mask_credentials

__all__ = ["mask_credentials"]
