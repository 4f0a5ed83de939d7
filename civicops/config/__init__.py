"""
Config Module — Alert threshold configuration.
"""

from .loader import ENV_VARS, MASTER_ENV_VAR, load_thresholds

__all__ = [
    "load_thresholds",
    "ENV_VARS",
    "MASTER_ENV_VAR",
]
