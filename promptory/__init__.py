"""Promptory LLM service: request queue, providers and hybrid response storage."""

__version__ = "0.1.0"
