"""lifehub: personal data aggregation hub."""

__version__ = "0.1.0"
