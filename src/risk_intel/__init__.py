"""Adverse media screening: fetch, classify, cluster and brief coverage of an entity."""

__all__ = ["config", "models", "scan"]
