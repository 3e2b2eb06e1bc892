"""
Adapters backed by third-party services.
"""

from .openai_client import OpenAIChatAdapter

__all__ = ["OpenAIChatAdapter"]
