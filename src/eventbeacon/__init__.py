"""
eventbeacon: polls a game-event source and announces each event occurrence
to subscribed Discord channels, once per lifecycle stage.
"""

__version__ = "0.1.0"
