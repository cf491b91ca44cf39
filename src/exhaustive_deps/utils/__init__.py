"""
Shared LibCST helpers and the logging console.
"""
