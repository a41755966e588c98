"""Typed failures raised by the session and streaming core."""

from __future__ import annotations


class SkillUpError(Exception):
    code = "SKILLUP_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SkillUpError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFound(SkillUpError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, key: str) -> None:
        super().__init__(f"{resource} not found: {key}")
        self.resource = resource
        self.key = key


class ProviderUnavailable(SkillUpError):
    code = "PROVIDER_UNAVAILABLE"
    status_code = 503


class ProviderError(SkillUpError):
    code = "PROVIDER_ERROR"
    status_code = 502


class ChannelClosed(SkillUpError):
    code = "CHANNEL_CLOSED"
    status_code = 409

    def __init__(self, channel_key: str) -> None:
        super().__init__(f"Channel is closed: {channel_key}")
        self.channel_key = channel_key
