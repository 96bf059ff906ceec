"""
Domain layer - Business entities and exceptions.
"""
