"""User-agent parsing into DeviceInfo."""

from typing import Optional

from user_agents import parse as parse_ua

from trustgate.common.constants import ContextConstants
from trustgate.data.schemas import DeviceInfo, DeviceType


_UNKNOWN = "Other"


def _clean(value: Optional[str]) -> Optional[str]:
    if not value or value == _UNKNOWN:
        return None
    return value.strip() or None


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """Derive device type, browser, OS and a friendly name.

    Device type is "unknown" only when no user agent is supplied; any
    parsed agent that is neither tablet nor mobile counts as desktop.
    """
    if not user_agent or not user_agent.strip():
        return DeviceInfo(
            device_type=DeviceType.UNKNOWN,
            device_name=ContextConstants.UNKNOWN_DEVICE_NAME,
        )

    ua = parse_ua(user_agent)

    if ua.is_tablet:
        device_type = DeviceType.TABLET
    elif ua.is_mobile:
        device_type = DeviceType.MOBILE
    else:
        device_type = DeviceType.DESKTOP

    browser = _clean(ua.browser.family)
    os_name = _clean(ua.os.family)

    return DeviceInfo(
        device_type=device_type,
        device_name=build_device_name(
            vendor=_clean(ua.device.brand),
            model=_clean(ua.device.model),
            os_name=os_name,
            device_type=device_type,
            browser=browser,
        ),
        browser=browser,
        browser_version=ua.browser.version_string or None,
        os=os_name,
        os_version=ua.os.version_string or None,
    )


def build_device_name(
    vendor: Optional[str],
    model: Optional[str],
    os_name: Optional[str],
    device_type: DeviceType,
    browser: Optional[str],
) -> str:
    """Friendly name: "{vendor} {model}", then "{os} {type}", then "{browser} on {os}"."""
    if vendor and model:
        return f"{vendor} {model}"
    if model:
        return model
    if os_name and device_type != DeviceType.UNKNOWN:
        return f"{os_name} {device_type.value}"
    return f"{browser or 'Unknown Browser'} on {os_name or 'Unknown OS'}"
