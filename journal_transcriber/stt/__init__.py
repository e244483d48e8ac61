"""Speech-to-text providers."""

from journal_transcriber.stt.registry import get_stt_engine

__all__ = ["get_stt_engine"]
