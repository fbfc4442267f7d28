"""
Messaging System - Pattern Matching Pipeline

Components:
- MessageIntake: Validates and filters incoming messages
- TTLCache: Expiring per-guild lookup cache
- MessagePipeline: Main orchestrator

Usage:
    from messaging import init_pipeline

    pipeline = await init_pipeline(storage)
    await pipeline.process_message(discord_message)
"""

from messaging.cache import UNSET, TTLCache
from messaging.intake import MessageEvent, MessageIntake, get_intake
from messaging.pipeline import MessagePipeline, get_pipeline, init_pipeline

__all__ = [
    'MessageEvent',
    'MessageIntake',
    'MessagePipeline',
    'TTLCache',
    'UNSET',
    'get_intake',
    'get_pipeline',
    'init_pipeline',
]
__version__ = '1.0.0'
