from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Sequence

import httplib2
from google.auth.exceptions import GoogleAuthError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from core.errors import CollaboratorUnavailable, StaleExternalReference
from core.settings import CalendarSettings
from datetime_utils import ensure_utc


logger = logging.getLogger("tasksync.calendar")

MISSING_STATUS = {404, 410}
TASK_ID_PROPERTY = "tasksync_task_id"


def _status(exc: HttpError) -> int:
    resp = getattr(exc, "resp", None)
    try:
        return int(getattr(resp, "status", 0) or 0)
    except (TypeError, ValueError):
        return 0


# ---------- event time payloads ----------
def _time_payload(dt: datetime) -> Dict[str, Any]:
    if dt.tzinfo is None:
        dt = ensure_utc(dt)
    payload = {"dateTime": dt.isoformat()}
    zone = getattr(dt.tzinfo, "key", None)
    if zone:
        payload["timeZone"] = zone
    return payload


def _date_payload(day: date) -> Dict[str, Any]:
    return {"date": day.isoformat()}


def build_calendar_service(creds, timeout_sec: float) -> Any:
    http = AuthorizedHttp(creds, http=httplib2.Http(timeout=timeout_sec))
    return build("calendar", "v3", http=http, cache_discovery=False)


class GoogleCalendar:
    """Calendar collaborator backed by Google Calendar v3.

    Every call is bounded by the transport timeout; transport failures and
    API errors surface as :class:`CollaboratorUnavailable`. Missing events
    (404/410 or ``status == cancelled``) read as ``None``.
    """

    def __init__(self, service, settings: CalendarSettings = CalendarSettings()):
        self.service = service
        self.settings = settings
        self.calendar_id = settings.calendar_id

    @classmethod
    def from_auth(cls, auth, settings: CalendarSettings = CalendarSettings()) -> "GoogleCalendar":
        auth.ensure_credentials()
        return cls(build_calendar_service(auth.get_credentials(), settings.timeout_sec), settings)

    def _execute(self, request, *, missing_ok: bool = False):
        try:
            return request.execute()
        except HttpError as exc:
            if missing_ok and _status(exc) in MISSING_STATUS:
                return None
            raise CollaboratorUnavailable(f"Calendar API error {_status(exc)}: {exc}") from exc
        except (httplib2.HttpLib2Error, OSError, TimeoutError) as exc:
            raise CollaboratorUnavailable(f"Calendar unreachable: {exc}") from exc
        except GoogleAuthError as exc:
            raise CollaboratorUnavailable(f"Calendar credentials rejected: {exc}") from exc

    def _reminders(self, offsets: Iterable[int]) -> Dict[str, Any]:
        minutes = sorted(set(int(m) for m in offsets))
        if not minutes:
            return {"useDefault": True}
        if len(minutes) > self.settings.max_reminders:
            logger.warning(
                "Calendar keeps at most %s reminders, dropping %s",
                self.settings.max_reminders,
                minutes[self.settings.max_reminders:],
            )
            minutes = minutes[: self.settings.max_reminders]
        return {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": m} for m in minutes],
        }

    def _body(self, title, start, end, description, reminders, task_id, recurrence=()) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "summary": title,
            "description": description or "",
            "start": start,
            "end": end,
            "reminders": self._reminders(reminders),
        }
        if recurrence:
            body["recurrence"] = list(recurrence)
        if task_id:
            body["extendedProperties"] = {"private": {TASK_ID_PROPERTY: task_id}}
        return body

    # ----- operations -----
    def find_event_by_id(self, event_id: str) -> Optional[Dict[str, Any]]:
        if not event_id:
            return None
        event = self._execute(
            self.service.events().get(calendarId=self.calendar_id, eventId=event_id),
            missing_ok=True,
        )
        if not event or event.get("status") == "cancelled":
            return None
        return event

    def create_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        *,
        description: str = "",
        reminders: Iterable[int] = (),
        task_id: Optional[str] = None,
        recurrence: Sequence[str] = (),
    ) -> Dict[str, Any]:
        body = self._body(
            title, _time_payload(start), _time_payload(end), description, reminders, task_id, recurrence
        )
        return self._execute(self.service.events().insert(calendarId=self.calendar_id, body=body))

    def create_all_day_event(
        self,
        title: str,
        start: date,
        end: Optional[date] = None,
        *,
        description: str = "",
        reminders: Iterable[int] = (),
        task_id: Optional[str] = None,
        recurrence: Sequence[str] = (),
    ) -> Dict[str, Any]:
        end = end or start + timedelta(days=1)
        body = self._body(
            title, _date_payload(start), _date_payload(end), description, reminders, task_id, recurrence
        )
        return self._execute(self.service.events().insert(calendarId=self.calendar_id, body=body))

    def update_event(
        self,
        event: Dict[str, Any],
        title: str,
        start,
        end,
        description: str = "",
        *,
        all_day: bool = False,
        reminders: Iterable[int] = (),
        task_id: Optional[str] = None,
        recurrence: Sequence[str] = (),
    ) -> Dict[str, Any]:
        if all_day:
            start_payload, end_payload = _date_payload(start), _date_payload(end)
        else:
            start_payload, end_payload = _time_payload(start), _time_payload(end)
        body = self._body(title, start_payload, end_payload, description, reminders, task_id)
        body["recurrence"] = list(recurrence)
        # switching between timed and all-day needs the other key cleared
        if all_day:
            body["start"]["dateTime"] = None
            body["end"]["dateTime"] = None
        else:
            body["start"]["date"] = None
            body["end"]["date"] = None
        updated = self._execute(
            self.service.events().patch(calendarId=self.calendar_id, eventId=event["id"], body=body),
            missing_ok=True,
        )
        if updated is None:
            raise StaleExternalReference(f"Event {event['id']} disappeared before it could be updated")
        return updated

    def delete_event(self, event: Dict[str, Any]) -> None:
        self._execute(
            self.service.events().delete(calendarId=self.calendar_id, eventId=event["id"]),
            missing_ok=True,
        )


__all__ = ["GoogleCalendar", "TASK_ID_PROPERTY", "build_calendar_service"]
