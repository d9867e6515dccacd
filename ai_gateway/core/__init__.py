"""
Core modules for AI Gateway.

This package contains pricing, budget enforcement, JSON extraction
and the error taxonomy.
"""
