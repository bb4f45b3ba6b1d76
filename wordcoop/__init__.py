"""
Word Coop: two-player word guessing over a WebRTC data channel.
"""

__version__ = "1.0.0"
