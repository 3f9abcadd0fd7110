"""Shared utilities."""

from midaz_core.utils.json_serializers import json_serializer

__all__ = ["json_serializer"]
