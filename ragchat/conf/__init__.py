"""Configuration and prompt texts."""

from ragchat.conf.config import Config

__all__ = ["Config"]
