from __future__ import annotations


class PortSyncError(Exception):
    """Base class for every failure raised while syncing the forwarded port."""


class TransportError(PortSyncError):
    """Network failure or 5xx response after the HTTP adapter gave up."""


class AntiBotFailure(PortSyncError):
    """The anti-bot solver did not hand back a clearance cookie."""


class AuthChallengeError(PortSyncError):
    """Login challenge token or post-login session cookie missing."""


class CaptchaUnsolvable(PortSyncError):
    """Captcha images could not be decoded or analysed."""


class CredentialRejected(PortSyncError):
    """The provider refused the submitted credentials."""


class TwoFactorRequired(CredentialRejected):
    """Credentials accepted but a second factor code is missing or wrong."""


class SessionExpired(PortSyncError):
    """The session cookie was bounced to the login page even after a relogin."""


class PortApiError(PortSyncError):
    """A port mutation endpoint answered without a success flag."""


class ParseError(PortSyncError):
    """An expected value was not found in a provider page."""


def with_context(error: PortSyncError, context: str) -> PortSyncError:
    """Return a copy of ``error`` with ``context`` prefixed, keeping its class."""
    return type(error)(f"{context}: {error}")
