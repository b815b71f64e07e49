"""Expose router modules."""

__all__ = ["cameras", "streams"]
