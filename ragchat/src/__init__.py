"""
Core package for the chat service.

This package contains the main application logic and components including:
- Data classes for messages, chunks, prompt plans and completions
- Services for conversation storage, prompt assembly and LLM integration
- Exception types shared across services
"""
