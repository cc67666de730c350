"""
Infrastructure layer: logging, resilience and HTTP plumbing.
"""
