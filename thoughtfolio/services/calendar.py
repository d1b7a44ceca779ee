"""
Calendar connections, the cached event feed, and automatic moments.

Provider OAuth and fetching live elsewhere; this module takes events the
provider sync pushed in and turns upcoming ones into moments.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from ..errors import NotFoundError, ValidationError
from ..models import CalendarConnection, CalendarEvent
from ..models.base import utcnow
from ..models.calendar import EVENT_FILTERS, LEAD_TIME_OPTIONS
from ..moments.service import create_moment_from_event

log = logging.getLogger(__name__)

CATCH_UP_WINDOW = timedelta(hours=1)


def parse_timestamp(value, field: str = "start_time") -> Optional[datetime]:
    """ISO 8601 to naive UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"{field} must be an ISO 8601 timestamp") from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def list_connections(session: Session, user_id: str) -> List[CalendarConnection]:
    return session.exec(
        select(CalendarConnection)
        .where(CalendarConnection.user_id == user_id)
        .order_by(CalendarConnection.created_at)
    ).all()


def get_connection(session: Session, user_id: str, connection_id: str) -> CalendarConnection:
    conn = session.exec(
        select(CalendarConnection).where(
            CalendarConnection.id == connection_id, CalendarConnection.user_id == user_id
        )
    ).first()
    if not conn:
        raise NotFoundError("Calendar connection not found")
    return conn


def _apply_settings(conn: CalendarConnection, data: Dict[str, Any]) -> None:
    if "lead_time_minutes" in data:
        if data["lead_time_minutes"] not in LEAD_TIME_OPTIONS:
            options = ", ".join(str(o) for o in LEAD_TIME_OPTIONS)
            raise ValidationError(f"Lead time must be one of {options} minutes")
        conn.lead_time_minutes = data["lead_time_minutes"]
    if "event_filter" in data:
        if data["event_filter"] not in EVENT_FILTERS:
            raise ValidationError("Event filter must be one of all, meetings, custom")
        conn.event_filter = data["event_filter"]
    if "custom_keywords" in data:
        keywords = data["custom_keywords"]
        if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
            raise ValidationError("custom_keywords must be a list of strings")
        conn.custom_keywords = [k.strip() for k in keywords if k.strip()]
    for key in ("auto_moment_enabled", "is_active"):
        if key in data:
            setattr(conn, key, bool(data[key]))


def create_connection(session: Session, user_id: str, data: Dict[str, Any]) -> CalendarConnection:
    conn = CalendarConnection(
        user_id=user_id,
        provider=data.get("provider") or "google",
        email=data.get("email") or "",
    )
    _apply_settings(conn, data)
    session.add(conn)
    session.commit()
    session.refresh(conn)
    return conn


def update_connection(session: Session, user_id: str, connection_id: str,
                      data: Dict[str, Any]) -> CalendarConnection:
    conn = get_connection(session, user_id, connection_id)
    _apply_settings(conn, data)
    conn.updated_at = utcnow()
    session.add(conn)
    session.commit()
    session.refresh(conn)
    return conn


def _attendee_count(event: Dict[str, Any]) -> int:
    attendees = event.get("attendees")
    if isinstance(attendees, list):
        return len(attendees)
    return int(event.get("attendee_count") or 0)


def event_passes_filter(conn: CalendarConnection, event: Dict[str, Any]) -> bool:
    if conn.event_filter == "meetings":
        return _attendee_count(event) > 0
    if conn.event_filter == "custom" and conn.custom_keywords:
        title = str(event.get("title") or "").lower()
        return any(kw.lower() in title for kw in conn.custom_keywords)
    return True


def ingest_events(session: Session, user_id: str, connection_id: str,
                  events: List[Dict[str, Any]]) -> Dict[str, int]:
    """Upsert provider events into the cache, applying the connection's filter."""
    conn = get_connection(session, user_id, connection_id)
    stored = skipped = 0

    for event in events:
        external_id = event.get("external_event_id") or event.get("id")
        title = (event.get("title") or "").strip()
        start = parse_timestamp(event.get("start_time"))
        if not external_id or not title or not start or not event_passes_filter(conn, event):
            skipped += 1
            continue

        cached = session.exec(
            select(CalendarEvent).where(
                CalendarEvent.connection_id == conn.id,
                CalendarEvent.external_event_id == external_id,
            )
        ).first()
        if cached is None:
            cached = CalendarEvent(connection_id=conn.id, user_id=user_id,
                                   external_event_id=external_id, title=title, start_time=start)
        cached.title = title
        cached.description = event.get("description")
        cached.start_time = start
        cached.end_time = parse_timestamp(event.get("end_time"), "end_time")
        cached.attendee_count = _attendee_count(event)
        cached.updated_at = utcnow()
        session.add(cached)
        stored += 1

    conn.last_sync_at = utcnow()
    conn.sync_error = None
    session.add(conn)
    session.commit()
    log.info("Synced %d events for connection %s (%d skipped)", stored, conn.id, skipped)
    return {"events_synced": len(events), "events_stored": stored, "events_skipped": skipped}


def list_events(session: Session, user_id: str, start: Optional[datetime] = None,
                end: Optional[datetime] = None) -> List[CalendarEvent]:
    query = select(CalendarEvent).where(CalendarEvent.user_id == user_id)
    if start:
        query = query.where(CalendarEvent.start_time >= start)
    if end:
        query = query.where(CalendarEvent.start_time <= end)
    return session.exec(query.order_by(CalendarEvent.start_time)).all()


def get_pending_events(session: Session, user_id: str, now: Optional[datetime] = None,
                       catch_up: bool = False) -> List[CalendarEvent]:
    """Events inside each connection's lead-time window that have no moment yet."""
    now = now or utcnow()
    connections = session.exec(
        select(CalendarConnection).where(
            CalendarConnection.user_id == user_id,
            CalendarConnection.is_active == True,  # noqa: E712
            CalendarConnection.auto_moment_enabled == True,  # noqa: E712
        )
    ).all()

    pending: List[CalendarEvent] = []
    for conn in connections:
        window_start = now - CATCH_UP_WINDOW if catch_up else now
        window_end = now + timedelta(minutes=conn.lead_time_minutes)
        pending.extend(session.exec(
            select(CalendarEvent).where(
                CalendarEvent.connection_id == conn.id,
                CalendarEvent.user_id == user_id,
                CalendarEvent.moment_created == False,  # noqa: E712
                CalendarEvent.start_time >= window_start,
                CalendarEvent.start_time <= window_end,
            )
        ).all())
    return pending


async def check_moments(session: Session, user_id: str, now: Optional[datetime] = None,
                        catch_up: bool = False) -> Dict[str, Any]:
    created = []
    for event in get_pending_events(session, user_id, now=now, catch_up=catch_up):
        try:
            moment = await create_moment_from_event(session, user_id, event.id)
        except Exception:
            log.exception("Failed to create moment for event %s", event.id)
            session.rollback()
            continue
        created.append({"event_id": event.id, "title": moment["description"], "moment_id": moment["id"]})
    return {"moments_created": len(created), "events": created}
