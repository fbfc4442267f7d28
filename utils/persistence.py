"""
Persistence Utilities

Generic JSON persistence helpers shared by the storage adapter.

Functions:
    - read_json: Read a JSON document, creating an empty one when missing
    - write_json: Atomically write a JSON document
    - read_json_async / write_json_async: thread-offloaded variants
"""

import asyncio
import json
import logging
import os
import tempfile
from typing import Any, Dict, Optional


log = logging.getLogger(__name__)


def read_json(file_path: str) -> Optional[Dict[str, Any]]:
    """
    Reads and returns the content of a JSON file.

    A missing or undecodable file is replaced by an empty document.

    Args:
        file_path: Path to the JSON file

    Returns:
        Optional[Dict[str, Any]]: JSON content or None if the file can't be read
    """
    try:
        with open(file_path, 'r', encoding="utf-8") as file:
            return json.load(file)
    except FileNotFoundError:
        write_json(file_path, {})
        return {}
    except json.JSONDecodeError:
        log.error(
            "Error decoding JSON file '%s'. Creating new file.", file_path)
        write_json(file_path, {})
        return {}
    except OSError as e:
        log.error("Error reading JSON file '%s': %s", file_path, e)
        return None


def write_json(file_path: str, data: Dict[str, Any]) -> bool:
    """
    Writes the provided data to a JSON file.

    The document is written to a temporary file in the same directory and
    moved into place, so readers never observe a half-written file.

    Args:
        file_path: Path to the JSON file
        data: Data to write

    Returns:
        bool: True if the file was written
    """
    directory = os.path.dirname(os.path.abspath(file_path))
    tmp_path = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        with os.fdopen(fd, 'w', encoding="utf-8") as file:
            json.dump(data, file, ensure_ascii=False, indent=4)
        os.replace(tmp_path, file_path)
        return True
    except (OSError, TypeError, ValueError) as e:
        log.error("Error saving JSON file '%s': %s", file_path, e)
        if tmp_path and os.path.exists(tmp_path):
            os.remove(tmp_path)
        return False


async def read_json_async(file_path: str) -> Optional[Dict[str, Any]]:
    """Read a JSON file without blocking the event loop."""
    return await asyncio.to_thread(read_json, file_path)


async def write_json_async(file_path: str, data: Dict[str, Any]) -> bool:
    """Write a JSON file without blocking the event loop."""
    return await asyncio.to_thread(write_json, file_path, data)
