"""LLM client implementations for the canvas assistant."""

from fincanvas.clients.claude import ClaudeClient, ClaudeResponse, convert_messages

__all__ = [
    "ClaudeClient",
    "ClaudeResponse",
    "convert_messages",
]
