"""Patchdesk: an authenticated AI coding-assistant backend with patch proposals."""

__version__ = "0.1.0"
