"""copy-out: orchestrated bulk S3 copies with archive thawing."""

__version__ = "0.1.0"
