"""Telephony SDK and audio device adapters.

The coordinator only talks to the abstractions defined here. A concrete SDK
binding is selected at runtime through ``TELEPHONY_CLIENT_FACTORY`` and
``AUDIO_DEVICES_FACTORY`` (see ``telephony.factory``).
"""
