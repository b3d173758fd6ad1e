"""
Instrumentation core: traversal, call-site construction and identifier registry.
"""
