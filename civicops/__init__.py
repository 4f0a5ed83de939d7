"""
civicops — Observability and schema-versioning control plane for the
complaint-processing AI pipeline.
"""

__version__ = "3.0.0"
