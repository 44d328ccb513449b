"""
notequiz - note-identification quiz backend.

Quiz session lifecycle and scoring, question generation, the configuration
catalog and scoped leaderboards.
"""

__version__ = "1.0.0"
