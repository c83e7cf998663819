"""Exception hierarchy for the mDNS discovery client."""
from __future__ import annotations


class MdnsError(Exception):
    """Base class for all errors raised by this package."""


class CodecError(MdnsError):
    """A datagram could not be decoded as a DNS message."""


class TruncatedPacketError(CodecError):
    """A declared length runs past the end of the datagram."""


class MalformedPacketError(CodecError):
    """A field holds a value the protocol does not allow.

    Raised for invalid compression pointers (forward references, loops),
    reserved label types and payloads that do not match their record type.
    """


class InitError(MdnsError):
    """The discovery engine could not be constructed."""


class InvalidNameError(InitError):
    """The discovery target is not a valid domain name."""


class TransportUnavailableError(InitError):
    """The multicast socket could not be opened or the group joined."""
