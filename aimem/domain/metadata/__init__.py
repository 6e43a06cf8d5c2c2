"""Embedded ``@ai-metadata`` block handling."""

from .extractor import MetadataExtractor, normalize_field_name

__all__ = ["MetadataExtractor", "normalize_field_name"]
