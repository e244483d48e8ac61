"""Queued audio transcription service for journal voice entries."""
