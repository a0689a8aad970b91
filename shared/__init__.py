"""
classpy Shared Module
=====================

Configuration, logging and console utilities shared by the classpy
decoders, engine and command line.
"""

from shared.config import ClasspyConfig, get_config

__all__ = ["ClasspyConfig", "get_config"]
