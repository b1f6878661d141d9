"""Adapters connecting the mapping engine to storage and file formats."""
