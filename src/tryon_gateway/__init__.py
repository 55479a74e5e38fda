"""Try-on gateway: rotating credential pool and quota gate for an image API."""

__version__ = "0.1.0"
