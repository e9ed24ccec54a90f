"""Password-gated file manager for S3-compatible buckets."""

__version__ = "0.1.0"
