"""
Schema-driven configuration editor for CLI tool settings.
"""
