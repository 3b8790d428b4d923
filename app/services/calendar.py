import asyncio
import functools
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httplib2
from fastapi import status
from google.auth.exceptions import GoogleAuthError, RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.config import settings
from app.exceptions import UpstreamFailure
from app.models.tasks import Task
from app.models.user import Account, User
from app.utils.timeutils import parse_hhmm

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]
DEFAULT_START = "09:00"
DEFAULT_DURATION_MINUTES = 30
TASK_MARKER = "duesync_task_id:"


# ---------- event payload ----------
def build_event_body(task: Task, tz_name: str) -> dict:
    """Calendar event for a task: due date at due time (09:00 when unset), estimated length or 30 min."""
    start = datetime.combine(task.due_date, parse_hhmm(task.due_time or DEFAULT_START))
    end = start + timedelta(minutes=task.estimated_time or DEFAULT_DURATION_MINUTES)
    notes = (task.description or "").strip()
    marker = f"{TASK_MARKER}{task.task_id}"
    return {
        "summary": task.title,
        "description": f"{notes}\n{marker}" if notes else marker,
        "start": {"dateTime": start.isoformat(), "timeZone": tz_name},
        "end": {"dateTime": end.isoformat(), "timeZone": tz_name},
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 24 * 60},
                {"method": "popup", "minutes": 30},
            ],
        },
    }


def _credentials_for(account: Account) -> Credentials:
    expiry = None
    if account.expires_at:
        # google-auth compares expiry against a naive UTC clock
        expiry = datetime.fromtimestamp(account.expires_at, tz=timezone.utc).replace(tzinfo=None)
    return Credentials(
        token=account.access_token,
        refresh_token=account.refresh_token,
        token_uri=settings.GOOGLE_TOKEN_URI,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        scopes=SCOPES,
        expiry=expiry,
    )


def _translate(exc: Exception) -> UpstreamFailure:
    if isinstance(exc, RefreshError):
        return UpstreamFailure(
            "Your Google Calendar access has expired",
            details="Please sign out and sign back in to reconnect your Google account",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
    if isinstance(exc, HttpError):
        code = getattr(exc.resp, "status", None)
        if code == 401:
            return UpstreamFailure(
                "Authentication failed",
                details="Please sign out and sign back in to reconnect your Google account",
                status_code=status.HTTP_401_UNAUTHORIZED,
            )
        if code == 403:
            return UpstreamFailure(
                "Permission denied",
                details="Please make sure you granted Calendar access when signing in",
                status_code=status.HTTP_403_FORBIDDEN,
            )
        return UpstreamFailure("Google Calendar request failed", details=f"HTTP {code}: {exc.reason}")
    return UpstreamFailure("Google Calendar request failed", details=str(exc))


class GoogleCalendarClient:
    """Blocking Calendar v3 calls for one user's credentials. Run it off the event loop."""

    def __init__(self, credentials: Credentials, calendar_id: str = "primary"):
        self.credentials = credentials
        self.calendar_id = calendar_id
        self._service = None

    def _events(self):
        if not self.credentials.valid and self.credentials.refresh_token:
            self.credentials.refresh(Request())
        if self._service is None:
            self._service = build("calendar", "v3", credentials=self.credentials, cache_discovery=False)
        return self._service.events()

    def insert_event(self, body: dict) -> dict:
        return self._events().insert(calendarId=self.calendar_id, body=body).execute()

    def patch_event(self, event_id: str, body: dict) -> dict:
        return self._events().patch(calendarId=self.calendar_id, eventId=event_id, body=body).execute()

    def delete_event(self, event_id: str) -> None:
        try:
            self._events().delete(calendarId=self.calendar_id, eventId=event_id).execute()
        except HttpError as e:
            # Already gone on Google's side counts as deleted
            if getattr(e.resp, "status", None) in (404, 410):
                logger.info("[CALENDAR] Event %s already deleted remotely", event_id)
                return
            raise


class CalendarSyncAdapter:
    """
    Async facade over Google Calendar used by the task lifecycle.

    Each call loads the user's Google account, runs the blocking client in a
    worker thread under CALENDAR_TIMEOUT_SECONDS, and turns every failure into
    UpstreamFailure. It never touches Task rows; refreshed access tokens are
    written to the Account row and committed by the caller.
    """

    def __init__(self, timeout: float | None = None, calendar_id: str | None = None):
        self.timeout = timeout if timeout is not None else settings.CALENDAR_TIMEOUT_SECONDS
        self.calendar_id = calendar_id or settings.CALENDAR_ID

    async def _google_account(self, db: AsyncSession, user_id: int) -> Account:
        result = await db.execute(
            select(Account).filter(Account.user_id == user_id, Account.provider == "google")
        )
        account = result.scalars().first()
        if not account or not account.access_token:
            raise UpstreamFailure(
                "Please connect your Google account first",
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        return account

    async def _call(self, db: AsyncSession, user: User, op: Callable[[GoogleCalendarClient], Any]) -> Any:
        account = await self._google_account(db, user.user_id)
        client = GoogleCalendarClient(_credentials_for(account), self.calendar_id)
        try:
            # A timed-out call keeps running in its thread; only the wait is bounded
            loop = asyncio.get_running_loop()
            result = await asyncio.wait_for(
                loop.run_in_executor(None, functools.partial(op, client)), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning("[CALENDAR] Call timed out after %.1fs for user %s", self.timeout, user.user_id)
            raise UpstreamFailure(
                "Google Calendar did not respond in time",
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            )
        except (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError) as exc:
            logger.error("[CALENDAR] Call failed for user %s: %s", user.user_id, exc)
            raise _translate(exc) from exc

        creds = client.credentials
        if creds.token and creds.token != account.access_token:
            logger.info("[CALENDAR] Access token refreshed for user %s", user.user_id)
            account.access_token = creds.token
            if creds.expiry:
                account.expires_at = int(creds.expiry.replace(tzinfo=timezone.utc).timestamp())
        return result

    async def create_event(self, db: AsyncSession, user: User, task: Task) -> dict:
        body = build_event_body(task, user.timezone)
        event = await self._call(db, user, lambda c: c.insert_event(body))
        logger.info("[CALENDAR] Created event %s for task %s", event.get("id"), task.task_id)
        return event

    async def update_event(self, db: AsyncSession, user: User, task: Task) -> dict:
        body = build_event_body(task, user.timezone)
        event_id = task.google_event_id
        return await self._call(db, user, lambda c: c.patch_event(event_id, body))

    async def delete_event(self, db: AsyncSession, user: User, event_id: str) -> None:
        await self._call(db, user, lambda c: c.delete_event(event_id))
        logger.info("[CALENDAR] Deleted event %s", event_id)


calendar_adapter = CalendarSyncAdapter()
