"""
Encore

Track resolution and AI-driven autoplay for music bots: turns free text,
backend URLs and Spotify links into playable tracks, and keeps sessions
playing with resilient AI recommendations once their queue runs out.
"""

__version__ = "0.1.0"
