from .voice import VoiceSessionRegistry

__all__ = ["VoiceSessionRegistry"]
