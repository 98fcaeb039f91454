"""Instruments services: device state conditions and shared helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .dtx.channel import Channel
from .dtx.connection import Connection, send_ack_if_needed
from .dtx.errors import DtxError
from .dtx.message import Message

log = logging.getLogger(__name__)

SERVICE_NAME = "com.apple.instruments.remoteserver"
SERVICE_NAME_IOS14 = "com.apple.instruments.remoteserver.DVTSecureSocketProxy"
CONDITION_INDUCER_CHANNEL = "com.apple.instruments.server.services.ConditionInducer"
CONDITION_TIMEOUT = 120.0


@dataclass
class Profile:
    """One profile of a condition profile type."""

    description: str = ""
    identifier: str = ""
    name: str = ""


@dataclass
class ProfileType:
    """A condition type the device can induce, with its profiles."""

    active_profile: str = ""
    identifier: str = ""
    profiles_sorted: bool = False
    is_active: bool = False
    name: str = ""
    is_destructive: bool = False
    is_internal: bool = False
    profiles: list[Profile] = field(default_factory=list)


class LoggingDispatcher:
    """Acknowledges messages that expect a reply and logs them."""

    def __init__(self, connection: Any) -> None:
        self.connection = connection

    def dispatch(self, msg: Message) -> None:
        send_ack_if_needed(self.connection, msg)
        log.debug("%s", msg)


def verify_profile_and_type(
    types: list[ProfileType], profile_type_identifier: str, profile_identifier: str
) -> tuple[ProfileType, Profile]:
    """Return the profile type and profile with the given identifiers.

    Raises ValueError when either is not found.
    """
    found_type = None
    found_profile = None
    for profile_type in types:
        if profile_type.identifier == profile_type_identifier:
            found_type = profile_type
            for profile in profile_type.profiles:
                if profile.identifier == profile_identifier:
                    found_profile = profile
    if found_type is not None and found_profile is not None:
        return found_type, found_profile
    raise ValueError(
        f"ProfiletypeIdentifier '{profile_type_identifier}' valid: "
        f"{str(found_type is not None).lower()}.  Profile identifier {profile_identifier} "
        f"valid:{str(found_profile is not None).lower()}"
    )


def _typed(mapping: dict[str, Any], key: str, kind: type) -> Any:
    value = mapping.get(key)
    if not isinstance(value, kind):
        raise ValueError(f"expected {kind.__name__} for '{key}' in {mapping!r}")
    return value


def _decode_profiles(profile_map: dict[str, Any]) -> list[Profile]:
    if "profiles" not in profile_map:
        raise ValueError(f"failed finding 'profiles' key in map: {profile_map!r}")
    raw_list = profile_map["profiles"]
    if not isinstance(raw_list, list):
        raise ValueError(f"failed converting 'profiles' to list in map: {profile_map!r}")
    profiles = []
    for raw in raw_list:
        if not isinstance(raw, dict):
            raise ValueError(f"invalid map: {profile_map!r}")
        profiles.append(
            Profile(
                description=_typed(raw, "description", str),
                identifier=_typed(raw, "identifier", str),
                name=_typed(raw, "name", str),
            )
        )
    return profiles


def decode_profile_types(response: Any) -> list[ProfileType]:
    """Decode the reply of availableConditionInducers; raises ValueError if malformed."""
    if not isinstance(response, list):
        raise ValueError(f"invalid response: {response!r}")
    result = []
    for raw in response:
        if not isinstance(raw, dict):
            raise ValueError(f"invalid response: {response!r}")
        result.append(
            ProfileType(
                active_profile=_typed(raw, "activeProfile", str),
                identifier=_typed(raw, "identifier", str),
                is_active=_typed(raw, "isActive", bool),
                is_destructive=_typed(raw, "isDestructive", bool),
                is_internal=_typed(raw, "isInternal", bool),
                name=_typed(raw, "name", str),
                profiles_sorted=_typed(raw, "profilesSorted", bool),
                profiles=_decode_profiles(raw),
            )
        )
    return result


def extract_map_payload(message: Message) -> dict[str, Any]:
    """Return the single dictionary in the payload of ``message``."""
    payload = message.payload or []
    if len(payload) != 1:
        raise ValueError(f"payload of message should have only one element: {message}")
    response = payload[0]
    if not isinstance(response, dict):
        raise ValueError(f"payload type of message should be a dictionary: {message}")
    return response


class DeviceStateControl:
    """Controls device conditions such as slow network profiles.

    The device drops an enabled condition when the connection closes, so keep
    the connection open while a condition should stay active.
    """

    def __init__(self, connection: Connection, timeout: float = CONDITION_TIMEOUT) -> None:
        self.connection = connection
        self.channel: Channel = connection.request_channel_identifier(
            CONDITION_INDUCER_CHANNEL, LoggingDispatcher(connection), timeout
        )

    def close(self) -> None:
        """Close the underlying connection."""
        self.connection.close()

    def list_profiles(self) -> list[ProfileType]:
        """Return all available profile types and their profiles."""
        response = self.channel.method_call("availableConditionInducers")
        if not response.payload:
            raise ValueError(f"invalid response: {response}")
        return decode_profile_types(response.payload[0])

    def _expect_success(self, response: Message) -> None:
        if not response.payload or response.payload[0] is not True:
            raise DtxError(f"failed enabling profile {response}")

    def enable(self, profile_type: ProfileType, profile: Profile) -> None:
        """Activate ``profile`` of ``profile_type``."""
        response = self.channel.method_call(
            "enableConditionWithIdentifier:profileIdentifier:",
            profile_type.identifier,
            profile.identifier,
        )
        self._expect_success(response)

    def disable(self, profile_type: ProfileType) -> None:
        """Deactivate the currently active profile of ``profile_type``."""
        response = self.channel.method_call(
            "disableConditionWithIdentifier:", profile_type.identifier
        )
        self._expect_success(response)