"""
Core data models for the Zen session client.

This module defines the verifier union, the authentication service messages
and the descriptors used to bind service clients to a transport.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple, Type, Union
from enum import Enum


class VerifierStage(Enum):
    """Wire stage of a login verifier."""
    UNSPECIFIED = "VERIFIER_STAGE_UNSPECIFIED"
    EMAIL = "VERIFIER_STAGE_EMAIL"
    CODE = "VERIFIER_STAGE_CODE"


@dataclass(frozen=True)
class Channel:
    """Phase 1 verifier: ask the server to send a one-time code to a contact channel."""
    identifier: str

    def __post_init__(self):
        if not self.identifier:
            raise ValueError("Channel identifier cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {'stage': VerifierStage.EMAIL.value, 'email': self.identifier}


@dataclass(frozen=True)
class Code:
    """Phase 2 verifier: submit the one-time code the user received."""
    value: str
    identifier: Optional[str] = None

    def __post_init__(self):
        if not self.value:
            raise ValueError("Verification code cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        data = {'stage': VerifierStage.CODE.value, 'code': self.value}
        if self.identifier:
            data['email'] = self.identifier
        return data


@dataclass(frozen=True)
class Empty:
    """No credential: token refresh only."""

    def to_dict(self) -> Dict[str, Any]:
        return {}


Verifier = Union[Channel, Code, Empty]


def verifier_from_dict(data: Optional[Dict[str, Any]]) -> Verifier:
    """Parse the wire form of a verifier back into its variant."""
    if not data:
        return Empty()
    stage = data.get('stage', VerifierStage.UNSPECIFIED.value)
    if stage == VerifierStage.EMAIL.value:
        return Channel(identifier=data.get('email', ''))
    if stage == VerifierStage.CODE.value:
        return Code(value=data.get('code', ''), identifier=data.get('email') or None)
    return Empty()


@dataclass
class LoginRequest:
    """AuthenticationService.Login request."""
    verifier: Verifier = field(default_factory=Empty)
    auto_refresh: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'autoRefresh': self.auto_refresh}
        verifier = self.verifier.to_dict()
        if verifier:
            data['verifier'] = verifier
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoginRequest":
        return cls(
            verifier=verifier_from_dict(data.get('verifier')),
            auto_refresh=bool(data.get('autoRefresh', False))
        )


@dataclass
class LoginResponse:
    """AuthenticationService.Login response; ``token`` is empty after phase 1."""
    token: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {'token': self.token} if self.token else {}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoginResponse":
        return cls(token=data.get('token') or "")


@dataclass
class LogoutRequest:
    """AuthenticationService.Logout request."""

    def to_dict(self) -> Dict[str, Any]:
        return {}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogoutRequest":
        return cls()


@dataclass
class LogoutResponse:
    """AuthenticationService.Logout response."""

    def to_dict(self) -> Dict[str, Any]:
        return {}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogoutResponse":
        return cls()


@dataclass(frozen=True)
class MethodDescriptor:
    """
    A unary RPC method.

    ``input_type``/``output_type`` are message classes with ``to_dict`` and
    ``from_dict``; None means the message is passed through as a plain dict.
    """
    name: str
    input_type: Optional[Type[Any]] = None
    output_type: Optional[Type[Any]] = None

    @property
    def attribute_name(self) -> str:
        """Python attribute name for this method (``UpsertPlan`` -> ``upsert_plan``)."""
        chars = []
        for index, char in enumerate(self.name):
            if char.isupper() and index > 0:
                chars.append('_')
            chars.append(char.lower())
        return ''.join(chars)


@dataclass(frozen=True)
class ServiceDescriptor:
    """An RPC service: fully qualified name plus its methods."""
    type_name: str
    methods: Tuple[MethodDescriptor, ...]

    def __post_init__(self):
        if not self.type_name:
            raise ValueError("Service type name cannot be empty")

    def method(self, name: str) -> MethodDescriptor:
        """Look a method up by its RPC or attribute name."""
        for method in self.methods:
            if method.name == name or method.attribute_name == name:
                return method
        raise KeyError(f"{self.type_name} has no method {name}")

    def procedure(self, method: MethodDescriptor) -> str:
        """URL path of a method, relative to the base URL."""
        return f"/{self.type_name}/{method.name}"


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the session state."""
    url: str
    token: str
    version: int

    @property
    def has_token(self) -> bool:
        return bool(self.token)
