"""Client for the installation proxy: listing and uninstalling apps."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .dtx.connection import Transport
from .lockdown import _encode_plist, _parse_plist, _read_plist

log = logging.getLogger(__name__)

SERVICE_NAME = "com.apple.mobile.installation_proxy"

_RETURN_ATTRIBUTES = [
    "ApplicationDSID",
    "ApplicationType",
    "CFBundleDisplayName",
    "CFBundleExecutable",
    "CFBundleIdentifier",
    "CFBundleName",
    "CFBundleShortVersionString",
    "CFBundleVersion",
    "Container",
    "Entitlements",
    "EnvironmentVariables",
    "MinimumOSVersion",
    "Path",
    "ProfileValidated",
    "SBAppTags",
    "SignerIdentity",
    "UIDeviceFamily",
    "UIRequiredDeviceCapabilities",
]


class InstallationError(Exception):
    """Raised when the installation proxy reports an error or an odd response."""


@dataclass
class AppInfo:
    """Attributes of one installed application."""

    application_dsid: int = 0
    application_type: str = ""
    cf_bundle_display_name: str = ""
    cf_bundle_executable: str = ""
    cf_bundle_identifier: str = ""
    cf_bundle_name: str = ""
    cf_bundle_short_version_string: str = ""
    cf_bundle_version: str = ""
    container: str = ""
    entitlements: dict[str, Any] = field(default_factory=dict)
    environment_variables: dict[str, Any] = field(default_factory=dict)
    minimum_os_version: str = ""
    path: str = ""
    profile_validated: bool = False
    sb_app_tags: list[str] = field(default_factory=list)
    signer_identity: str = ""
    ui_device_family: list[int] = field(default_factory=list)
    ui_required_device_capabilities: list[str] = field(default_factory=list)


def _app_info_from_dict(raw: dict[str, Any]) -> AppInfo:
    return AppInfo(
        application_dsid=int(raw.get("ApplicationDSID", 0)),
        application_type=raw.get("ApplicationType", ""),
        cf_bundle_display_name=raw.get("CFBundleDisplayName", ""),
        cf_bundle_executable=raw.get("CFBundleExecutable", ""),
        cf_bundle_identifier=raw.get("CFBundleIdentifier", ""),
        cf_bundle_name=raw.get("CFBundleName", ""),
        cf_bundle_short_version_string=raw.get("CFBundleShortVersionString", ""),
        cf_bundle_version=raw.get("CFBundleVersion", ""),
        container=raw.get("Container", ""),
        entitlements=dict(raw.get("Entitlements", {})),
        environment_variables=dict(raw.get("EnvironmentVariables", {})),
        minimum_os_version=raw.get("MinimumOSVersion", ""),
        path=raw.get("Path", ""),
        profile_validated=bool(raw.get("ProfileValidated", False)),
        sb_app_tags=list(raw.get("SBAppTags", [])),
        signer_identity=raw.get("SignerIdentity", ""),
        ui_device_family=list(raw.get("UIDeviceFamily", [])),
        ui_required_device_capabilities=list(raw.get("UIRequiredDeviceCapabilities", [])),
    )


@dataclass
class BrowseResponse:
    """One chunk of a Browse reply."""

    current_index: int = 0
    current_amount: int = 0
    status: str = ""
    current_list: list[AppInfo] = field(default_factory=list)


def browse_request(application_type: str, show_launch_prohibited_apps: bool) -> dict[str, Any]:
    """Build a Browse command; an empty application type browses all apps."""
    client_options: dict[str, Any] = {"ReturnAttributes": list(_RETURN_ATTRIBUTES)}
    if application_type:
        client_options["ApplicationType"] = application_type
    if show_launch_prohibited_apps:
        client_options["ShowLaunchProhibitedApps"] = True
    return {"ClientOptions": client_options, "Command": "Browse"}


def parse_browse_response(data: bytes) -> BrowseResponse:
    """Parse one Browse reply; raises InstallationError for malformed data."""
    try:
        parsed = _parse_plist(data)
    except ValueError as exc:
        raise InstallationError(f"could not decode browse response: {exc}") from exc
    if not isinstance(parsed, dict):
        raise InstallationError(f"browse response is not a dictionary: {parsed!r}")
    try:
        return BrowseResponse(
            current_index=int(parsed.get("CurrentIndex", 0)),
            current_amount=int(parsed.get("CurrentAmount", 0)),
            status=str(parsed.get("Status", "")),
            current_list=[_app_info_from_dict(app) for app in parsed.get("CurrentList", [])],
        )
    except (TypeError, ValueError, AttributeError) as exc:
        raise InstallationError(f"unexpected browse response: {parsed!r}") from exc


def check_finished(response: dict[str, Any]) -> bool:
    """Return True once an uninstall is complete, False while it is running.

    Raises InstallationError when the device reports an error or an unknown update.
    """
    if "Error" in response:
        raise InstallationError(f"received uninstall error: {response['Error']}")
    if "Status" in response:
        status = response["Status"]
        if status == "Complete":
            log.info("done uninstalling")
            return True
        log.info("uninstall status: %s", status)
        return False
    raise InstallationError(f"unknown status update: {response!r}")


class InstallationProxy:
    """Talks to the installation proxy service over a transport."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    def __enter__(self) -> InstallationProxy:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying transport."""
        self._transport.close()

    def _send(self, request: dict[str, Any]) -> None:
        self._transport.send(_encode_plist(request))

    def _browse(self, request: dict[str, Any]) -> list[AppInfo]:
        self._send(request)
        reader = self._transport.reader()
        responses = []
        while True:
            response = parse_browse_response(_read_plist(reader))
            responses.append(response)
            if response.status == "Complete":
                break
        size = sum(response.current_amount for response in responses)
        apps = [AppInfo() for _ in range(size)]
        for response in responses:
            for position, app in enumerate(response.current_list, start=response.current_index):
                if position < size:
                    apps[position] = app
        return apps

    def browse_user_apps(self) -> list[AppInfo]:
        """List user installed apps, including launch prohibited ones."""
        return self._browse(browse_request("User", True))

    def browse_system_apps(self) -> list[AppInfo]:
        """List system apps."""
        return self._browse(browse_request("System", False))

    def browse_all_apps(self) -> list[AppInfo]:
        """List all apps, including launch prohibited ones."""
        return self._browse(browse_request("", True))

    def uninstall(self, bundle_id: str) -> None:
        """Uninstall the app and wait until the device reports completion."""
        self._send(
            {
                "Command": "Uninstall",
                "ApplicationIdentifier": bundle_id,
                "ClientOptions": {},
            }
        )
        reader = self._transport.reader()
        while True:
            try:
                parsed = _parse_plist(_read_plist(reader))
            except ValueError as exc:
                raise InstallationError(f"could not decode uninstall response: {exc}") from exc
            if not isinstance(parsed, dict):
                raise InstallationError(f"unknown status update: {parsed!r}")
            if check_finished(parsed):
                return