"""
BetScope - Device Tracking

Clients identify themselves with the X-Device-Fingerprint header. The
first sighting of a fingerprint creates an UNTRUSTED device owned by the
signing-in user; blocked devices can no longer open sessions.
"""

from typing import List, Optional
from uuid import UUID

from sqlmodel import Session as DBSession, select

from betscope.auth import sessions as session_service
from betscope.auth.errors import DeviceBlockedError, NotFoundError
from betscope.auth.models import Device, DeviceType, Role, User
from betscope.logging import get_logger


logger = get_logger(__name__)

FINGERPRINT_HEADER = "X-Device-Fingerprint"
DEVICE_NAME_HEADER = "X-Device-Name"


def detect_device_type(user_agent: Optional[str]) -> DeviceType:
    if not user_agent:
        return DeviceType.OTHER
    ua = user_agent.lower()
    if "ipad" in ua or "tablet" in ua:
        return DeviceType.TABLET
    if "mobile" in ua or "iphone" in ua or "android" in ua:
        return DeviceType.MOBILE
    if "windows" in ua or "macintosh" in ua or "linux" in ua or "cros" in ua:
        return DeviceType.DESKTOP
    return DeviceType.OTHER


async def get_device_by_fingerprint(db: DBSession, fingerprint: str) -> Optional[Device]:
    statement = select(Device).where(Device.fingerprint == fingerprint)
    return db.exec(statement).first()


async def register_device(
    db: DBSession,
    user_id: UUID,
    fingerprint: Optional[str],
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
    name: Optional[str] = None,
) -> Optional[Device]:
    """
    Find or create the device a user is signing in from.

    Returns:
        The device, or None when no fingerprint was sent or the
        fingerprint already belongs to another account

    Raises:
        DeviceBlockedError: The device was blocked by its owner
    """
    if not fingerprint:
        return None
    fingerprint = fingerprint.strip()[:255]

    device = await get_device_by_fingerprint(db, fingerprint)
    if device is not None:
        if device.user_id != user_id:
            logger.warning(
                "auth.device.fingerprint_conflict",
                device_id=str(device.id),
                user_id=str(user_id),
            )
            return None
        if device.is_blocked:
            raise DeviceBlockedError()
        device.update_last_seen(ip=ip_address)
        if user_agent:
            device.user_agent = user_agent
        db.add(device)
        db.commit()
        return device

    device = Device(
        user_id=user_id,
        fingerprint=fingerprint,
        name=name[:100] if name else None,
        type=detect_device_type(user_agent),
        user_agent=user_agent,
    )
    device.update_last_seen(ip=ip_address)
    db.add(device)
    db.commit()
    db.refresh(device)

    logger.info("auth.device.registered", device_id=str(device.id), user_id=str(user_id))
    return device


async def get_user_devices(db: DBSession, user_id: UUID) -> List[Device]:
    statement = select(Device).where(Device.user_id == user_id).order_by(Device.created_at.desc())
    return list(db.exec(statement).all())


async def get_owned_device(db: DBSession, device_id: UUID, user: User) -> Device:
    """
    Load a device the user may manage. Admins may manage any device.

    Raises:
        NotFoundError: Unknown device, or owned by someone else
    """
    device = db.get(Device, device_id)
    if device is None or (device.user_id != user.id and user.role != Role.ADMIN):
        raise NotFoundError("Device not found")
    return device


async def trust_device(db: DBSession, device: Device) -> Device:
    """Mark a device TRUSTED. Raises InvalidTransitionError for blocked devices."""
    device.trust()
    db.add(device)
    db.commit()
    return device


async def block_device(db: DBSession, device: Device, reason: Optional[str] = None) -> int:
    """
    Block a device and revoke every session opened from it.

    Returns:
        Number of sessions revoked
    """
    device.block(reason)
    db.add(device)
    db.commit()
    return await session_service.revoke_device_sessions(db, device.id, reason="device_blocked")
