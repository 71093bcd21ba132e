import logging
from datetime import timedelta
from typing import Iterable, List

import httpx
from sqlalchemy import delete
from sqlmodel import Session, select

from . import store
from .config import get_settings
from .models import Alert

logger = logging.getLogger(__name__)

LINE_PUSH_URL = "https://api.line.me/v2/bot/message/push"
LINE_BROADCAST_URL = "https://api.line.me/v2/bot/message/broadcast"


def _post_line(url: str, token: str, payload: dict) -> None:
    try:
        response = httpx.post(
            url,
            headers={"Authorization": f"Bearer {token}"},
            json=payload,
            timeout=5,
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Failed to send LINE message: %s", exc)


def _push(recipient: str, token: str, text: str) -> None:
    _post_line(LINE_PUSH_URL, token, {"to": recipient, "messages": [{"type": "text", "text": text}]})


def _broadcast(token: str, text: str) -> None:
    _post_line(LINE_BROADCAST_URL, token, {"messages": [{"type": "text", "text": text}]})


def send_line(text: str) -> None:
    settings = get_settings()
    token = settings.line_channel_access_token
    targets: Iterable[str] = settings.line_target_ids
    if not token:
        return
    if targets:
        for recipient in targets:
            _push(recipient, token, text)
    else:
        _broadcast(token, text)


def publish_alert(session: Session, alert_type: str, message: str) -> Alert:
    """Record a short-lived alert for the devices and forward it to LINE."""
    alert = Alert(type=alert_type, message=message, created_at=store.server_now())
    session.add(alert)
    session.commit()
    session.refresh(alert)
    send_line(message)
    return alert


def recent_alerts(session: Session) -> List[Alert]:
    """Alerts younger than the TTL; older ones are purged on the way."""
    cutoff = store.server_now() - timedelta(seconds=get_settings().alert_ttl_seconds)
    session.execute(delete(Alert).where(Alert.created_at < cutoff))
    session.commit()
    return list(session.exec(select(Alert).order_by(Alert.created_at.desc(), Alert.id.desc())))
