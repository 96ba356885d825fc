"""Keep a local file tree and an S3 bucket prefix reconciled."""

__version__ = "0.1.0"
