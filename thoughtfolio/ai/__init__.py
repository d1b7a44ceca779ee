"""Generative-AI integrations: matching, capture analysis and usage limits."""
