"""
Gemini Proxy

OpenAI-compatible HTTP proxy in front of the Google Gemini API.
"""

__version__ = "0.1.0"
