"""
Core utilities: execution context, security and authentication.
"""
