"""Resolve the configured telephony SDK and audio device implementations."""

from __future__ import annotations

import importlib
from typing import Any

from config.settings import get_settings
from telephony.audio import AudioDevices
from telephony.client import TelephonyClientFactory


def load_object(path: str) -> Any:
    """Import ``module:attribute`` (``module.attribute`` is accepted as well)."""

    module_name, sep, attr = path.partition(":")
    if not sep:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"Invalid import path: {path!r}")

    module = importlib.import_module(module_name)
    target: Any = module
    for part in attr.split("."):
        target = getattr(target, part)
    return target


def build_telephony_client_factory() -> TelephonyClientFactory:
    settings = get_settings()
    if not settings.telephony_client_factory:
        raise RuntimeError("TELEPHONY_CLIENT_FACTORY not configured")
    return load_object(settings.telephony_client_factory)


def build_audio_devices() -> AudioDevices:
    settings = get_settings()
    if not settings.audio_devices_factory:
        raise RuntimeError("AUDIO_DEVICES_FACTORY not configured")
    factory = load_object(settings.audio_devices_factory)
    return factory()
