from app.exceptions import UpstreamFailure


class FakeCalendar:
    """
    In-memory stand-in for CalendarSyncAdapter.

    - `events` mirrors what Google would hold
    - `fail_next` raises the given UpstreamFailure on the next call only
    - `after_create` is awaited after an event is created, before returning
    """

    def __init__(self) -> None:
        self.events: dict[str, dict] = {}
        self.calls: list[str] = []
        self.fail_next: UpstreamFailure | None = None
        self.after_create = None
        self._counter = 0

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc

    async def create_event(self, db, user, task) -> dict:
        self._check("create")
        self._counter += 1
        event_id = f"evt-{self._counter}"
        self.events[event_id] = {"summary": task.title, "task_id": task.task_id}
        if self.after_create is not None:
            await self.after_create(task)
        return {"id": event_id}

    async def update_event(self, db, user, task) -> dict:
        self._check("update")
        self.events[task.google_event_id]["summary"] = task.title
        return {"id": task.google_event_id}

    async def delete_event(self, db, user, event_id: str) -> None:
        self._check("delete")
        self.events.pop(event_id, None)
