"""Retrieval, ranking and pattern analysis."""
