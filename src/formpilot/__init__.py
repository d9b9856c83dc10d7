"""FormPilot -- multi-pass, AI-planned web form filling."""

__version__ = "0.3.0"
