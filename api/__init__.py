"""
Housing Stats API package.
"""
