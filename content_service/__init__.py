"""
Content Service.

Authors, posts and edit suggestions over a relational store, with a
Redis collection cache kept in step with every mutation.
"""

__version__ = "1.0.0"
