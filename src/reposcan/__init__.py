"""reposcan: repository security-scan pipeline."""

__version__ = "0.1.0"
