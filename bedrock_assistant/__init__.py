"""bedrock-assistant: terminal chat client for Bedrock models with local tools."""

__version__ = "0.1.0"
