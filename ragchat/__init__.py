"""
Core package for the retrieval-augmented chat service.

This package contains:
- Conversation history storage with expiry and truncation
- Token-budgeted packing of retrieved chunks into prompts
- Question reformulation and answer generation (batch and streaming)
- LLM provider adapters and token counters
- Configuration and prompt modules
"""

import logging
import os

# Configure logging with clickable paths before anything else imports logging
logging.basicConfig(
    level=logging.INFO, format="%(levelname)s: %(pathname)s:%(lineno)d %(message)s"
)


class ClickablePathFilter(logging.Filter):
    """Filter to make file paths clickable in the terminal."""

    def filter(self, record: logging.LogRecord) -> bool:
        if hasattr(record, "pathname"):
            # Convert absolute path to relative path from workspace root
            workspace_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
            try:
                record.pathname = os.path.relpath(record.pathname, workspace_root)
            except ValueError:
                # Different drive on Windows
                pass
        return True


# Handler-level so records propagated from child loggers are rewritten too
for _handler in logging.getLogger().handlers:
    _handler.addFilter(ClickablePathFilter())
