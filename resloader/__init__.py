"""Load and periodically reload resources from local directories or URLs, with etag tracking."""

__version__ = "0.1.0"
__all__ = ["comments", "resource", "urlloader", "dirloader"]