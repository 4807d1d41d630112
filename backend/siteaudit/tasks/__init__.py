"""
Background tasks for audit processing.
"""
