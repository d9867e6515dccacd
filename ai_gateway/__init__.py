"""
AI Gateway.

Budget-governed, caching client for a generative-text API.
"""

__version__ = "0.1.0"
