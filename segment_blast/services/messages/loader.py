"""
Message file loading and placeholder rendering.

Accepted files:
- JSON array of LINE message objects
- JSON object {"messages": [...]}
- Plain text (.txt), sent as a single text message
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Union

from segment_blast.core.exceptions import TemplateError

logger = logging.getLogger(__name__)

# LINE accepts at most 5 message objects per request
MAX_MESSAGES_PER_REQUEST = 5

# Fallback for {{NAME}} when no name resolves
DEFAULT_NAME = "お客様"

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Z0-9_]+)\s*\}\}")


def _require_string(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise TemplateError(f"{field} must be a non-empty string")
    return value


def validate_messages(messages: Any) -> List[dict]:
    """
    Validates a list of LINE message objects.

    Only the types the campaigns use are accepted: text, flex and image.

    Args:
        messages: Parsed message list

    Returns:
        The same list, validated

    Raises:
        TemplateError: If the list or any message is malformed
    """
    if not isinstance(messages, list) or not messages:
        raise TemplateError('Message file format invalid. Use: [..] or {"messages": [..]}')
    if len(messages) > MAX_MESSAGES_PER_REQUEST:
        raise TemplateError(
            f"Too many messages: {len(messages)} (max {MAX_MESSAGES_PER_REQUEST})"
        )

    for i, message in enumerate(messages):
        if not isinstance(message, dict):
            raise TemplateError(f"messages[{i}] must be an object")
        kind = _require_string(message.get("type"), f"messages[{i}].type")

        if kind == "text":
            _require_string(message.get("text"), f"messages[{i}].text")
        elif kind == "flex":
            _require_string(message.get("altText"), f"messages[{i}].altText")
            if not isinstance(message.get("contents"), dict):
                raise TemplateError(f"messages[{i}].contents is required")
        elif kind == "image":
            _require_string(message.get("originalContentUrl"), f"messages[{i}].originalContentUrl")
            _require_string(message.get("previewImageUrl"), f"messages[{i}].previewImageUrl")
        else:
            raise TemplateError(
                f"Unsupported message type: {kind} (allowed: text, flex, image)"
            )

    return messages


def load_messages(path: Union[str, Path]) -> List[dict]:
    """
    Loads and validates a message file.

    Args:
        path: File path (relative paths resolve against the cwd)

    Returns:
        List of LINE message objects

    Raises:
        TemplateError: Missing, unreadable or malformed file
    """
    file_path = Path(path).expanduser().resolve()
    if not file_path.is_file():
        raise TemplateError(f"Message file not found: {file_path}")

    try:
        raw = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise TemplateError(f"Message file unreadable: {file_path}", original_error=e)

    if file_path.suffix.lower() == ".txt":
        text = raw.strip()
        if not text:
            raise TemplateError(f"Message file is empty: {file_path}")
        return [{"type": "text", "text": text}]

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TemplateError(f"Message file JSON parse failed: {e}", original_error=e)

    if isinstance(parsed, dict):
        parsed = parsed.get("messages")
    messages = validate_messages(parsed)

    logger.debug(f"Loaded {len(messages)} messages from {file_path}")
    return messages


def render(obj: Any, substitutions: Dict[str, str]) -> Any:
    """
    Replaces {{KEY}} placeholders in every string of a message tree.

    Unknown placeholders are left untouched.

    Args:
        obj: Message list/object/string
        substitutions: Placeholder values keyed by name (e.g. {"NAME": "..."})

    Returns:
        A new tree with placeholders replaced
    """
    if isinstance(obj, str):
        return _PLACEHOLDER.sub(
            lambda m: substitutions.get(m.group(1), m.group(0)), obj
        )
    if isinstance(obj, list):
        return [render(item, substitutions) for item in obj]
    if isinstance(obj, dict):
        return {key: render(value, substitutions) for key, value in obj.items()}
    return obj


def render_named(messages: List[dict], name: str) -> List[dict]:
    """Renders {{NAME}} with the recipient's name, falling back to DEFAULT_NAME."""
    display = name.strip() if name and name.strip() else DEFAULT_NAME
    return render(messages, {"NAME": display})
