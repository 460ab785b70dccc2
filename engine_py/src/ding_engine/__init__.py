"""
DING card game engine, multiplayer sync and turn notifications.
"""

__version__ = "1.0.0"
