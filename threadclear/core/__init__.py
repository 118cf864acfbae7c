"""
Core engine: orchestration, request context and error taxonomy
"""
