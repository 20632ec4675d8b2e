"""
Exceptions raised by the voicebridge conversation core.
"""


class VoiceBridgeError(Exception):
    """Base exception for voicebridge errors."""
    pass


class ModelError(VoiceBridgeError):
    """A completion or function result request to the language model failed."""
    pass


class DirectiveDecodeError(VoiceBridgeError):
    """A directive payload in model output could not be decoded as JSON."""
    pass


class DeliveryError(VoiceBridgeError):
    """A progress event could not be delivered to the callback URL."""
    pass


class MalformedInboundMessage(VoiceBridgeError):
    """An inbound progress message could not be parsed."""
    pass


class TransportError(VoiceBridgeError):
    """The telephony connection failed."""
    pass


class UnsupportedCapability(VoiceBridgeError):
    """A function schema was supplied to a model without function call support."""
    pass
