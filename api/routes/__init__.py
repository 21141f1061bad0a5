"""
API Routes for the knowledge-base retrieval service.
"""

from . import retrieval

__all__ = ["retrieval"]
