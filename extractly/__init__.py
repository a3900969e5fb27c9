"""Extractly: CSS, XPath and rendered-DOM extraction service."""

__version__ = "0.1.0"
