"""Utility functions for the chat services."""

import json
import logging
import os
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ragchat.conf.config import Config
from ragchat.src.data_classes import Message, TokenUsage

logger = logging.getLogger(__name__)

# Serializes read-append-write of the per-stage debug files
_debug_file_lock = threading.Lock()


def log_llm_interaction(
    stage: str,
    messages: Sequence[Message],
    response: str,
    usage: Optional[TokenUsage] = None,
    debug_dir: Optional[str] = None,
) -> None:
    """Log an LLM interaction, optionally to a debug file for the stage.

    The prompt and response are always logged at debug level. When a debug
    directory is configured (argument or ``Config.LLM_DEBUG_DIR``) the full
    interaction is also appended to ``llm_<stage>_debug.json`` in it, one file
    per stage to make analysis easier.

    Args:
        stage: The processing stage (e.g., "reformulation", "answer")
        messages: The messages sent to the LLM
        response: The response received from the LLM
        usage: Token usage reported for the call
        debug_dir: Directory for debug files, Config.LLM_DEBUG_DIR when None
    """
    logger.debug(f"LLM Interaction - Stage: {stage}")
    for msg in messages:
        logger.debug(f"  {msg.role.value}: {msg.content[:100]}...")
    logger.debug(f"Response received: {response[:100]}...")

    debug_dir = debug_dir or Config.LLM_DEBUG_DIR
    if not debug_dir:
        return

    try:
        os.makedirs(debug_dir, exist_ok=True)
        stage_file = os.path.join(debug_dir, f"llm_{stage}_debug.json")

        interaction: Dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "stage": stage,
            "messages": [m.to_dict() for m in messages],
            "response": response,
            "usage": usage.to_dict() if usage else None,
        }

        with _debug_file_lock:
            _append_interaction(stage_file, interaction)

        logger.debug(f"Logged LLM interaction for stage '{stage}' to {stage_file}")
    except Exception as e:
        # Debug dumps must never fail an exchange
        logger.error(f"Failed to log LLM interaction to debug file: {e}")


def _append_interaction(stage_file: str, interaction: Dict[str, Any]) -> None:
    interactions: List[Dict[str, Any]] = []
    try:
        if os.path.exists(stage_file):
            with open(stage_file, "r", encoding="utf-8") as f:
                interactions = json.load(f)
    except json.JSONDecodeError:
        # If file is empty or invalid, start fresh
        interactions = []

    if not isinstance(interactions, list):
        logger.warning(f"Debug file {stage_file} does not hold a list, starting fresh")
        interactions = []
    interactions.append(interaction)

    with open(stage_file, "w", encoding="utf-8") as f:
        json.dump(interactions, f, indent=2, ensure_ascii=False)
