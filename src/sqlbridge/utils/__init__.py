"""
Internal helpers shared by drivers and connections.
"""
