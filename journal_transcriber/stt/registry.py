"""Speech-to-text engine registry with configuration-driven selection.

Maps provider name strings to engine classes. Use get_stt_engine() to
instantiate an engine by name with engine-specific configuration.
"""

from journal_transcriber.stt.interface import SpeechToTextEngine
from journal_transcriber.stt.speechmatics import SpeechmaticsEngine
from journal_transcriber.stt.whisper import WhisperEngine
from journal_transcriber.utils.errors import SpeechToTextError

STT_ENGINES: dict[str, type[SpeechToTextEngine]] = {
    "speechmatics": SpeechmaticsEngine,
    "whisper": WhisperEngine,
}


def get_stt_engine(provider: str, **kwargs: object) -> SpeechToTextEngine:
    """Create a speech-to-text engine instance by provider name.

    Args:
        provider: Provider name (e.g., "whisper").
        **kwargs: Engine-specific configuration passed to the constructor.

    Returns:
        An initialized SpeechToTextEngine instance.

    Raises:
        SpeechToTextError: If the provider name is not registered.
    """
    engine_cls = STT_ENGINES.get(provider)
    if not engine_cls:
        available = ", ".join(sorted(STT_ENGINES.keys()))
        raise SpeechToTextError(
            f"Unknown STT provider: '{provider}'. Available: {available}",
            provider=provider,
        )
    return engine_cls(**kwargs)
