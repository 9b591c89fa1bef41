"""Stateless HTTP relay between chat clients and Gemini."""
