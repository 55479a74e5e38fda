"""Upstream image generation client."""
