# src/concierge/llm/providers/__init__.py
from .base import BaseProvider, TRAVEL_CONCIERGE_SYSTEM_PROMPT
from .mock_provider import MockProvider
