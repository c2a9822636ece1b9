"""Cloud synchronization of the progress store.

The reconciler runs on a single asyncio event loop. Outgoing writes are
debounced full snapshots; incoming documents are applied only when their
timestamp is newer than anything already applied or sent, and are ignored
entirely while a local write is in flight.
"""
import asyncio
import copy
import logging
import random
import string
import time

from supabase import acreate_client

from exam_trainer.config import DELAYS
from exam_trainer.models import SyncStatus

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """A remote read, write or subscription failed."""


def generate_profile_id(prefix: str = "trainer", rng=None) -> str:
    rng = rng or random
    alphabet = string.ascii_lowercase + string.digits
    return f"{prefix}_{''.join(rng.choice(alphabet) for _ in range(9))}"


class RemoteStore:
    """Interface for a backing store holding one document per profile."""

    async def read(self, profile_id: str) -> dict | None:
        raise NotImplementedError

    async def write(self, profile_id: str, document: dict) -> None:
        raise NotImplementedError

    async def subscribe(self, profile_id: str, callback):
        """Register `callback(document)` for pushes; returns a handle for unsubscribe."""
        raise NotImplementedError

    async def unsubscribe(self, handle) -> None:
        raise NotImplementedError


class MemoryRemote(RemoteStore):
    """In-process store. Several reconcilers sharing one instance behave like several devices."""

    def __init__(self):
        self.documents = {}
        self.write_count = 0
        self.fail = False
        self._subscribers = {}

    async def read(self, profile_id):
        if self.fail:
            raise SyncError("remote unavailable")
        await asyncio.sleep(0)
        return copy.deepcopy(self.documents.get(profile_id))

    async def write(self, profile_id, document):
        if self.fail:
            raise SyncError("remote unavailable")
        self.documents[profile_id] = copy.deepcopy(document)
        self.write_count += 1
        # Subscribers, the writer included, see the change before the write resolves.
        self.push(profile_id)
        await asyncio.sleep(0)

    def push(self, profile_id):
        document = self.documents.get(profile_id)
        for callback in list(self._subscribers.get(profile_id, [])):
            callback(copy.deepcopy(document))

    async def subscribe(self, profile_id, callback):
        if self.fail:
            raise SyncError("remote unavailable")
        self._subscribers.setdefault(profile_id, []).append(callback)
        return (profile_id, callback)

    async def unsubscribe(self, handle):
        profile_id, callback = handle
        callbacks = self._subscribers.get(profile_id, [])
        if callback in callbacks:
            callbacks.remove(callback)


def _record_from_payload(payload: dict) -> dict | None:
    data = payload.get("data", payload)
    return data.get("record") or data.get("new")


class SupabaseRemote(RemoteStore):
    """Profiles kept in a Supabase table `profiles(id text primary key, data jsonb, updated_at bigint)`."""

    def __init__(self, url: str, key: str, table: str = "profiles"):
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
        self.url = url
        self.key = key
        self.table = table
        self._client = None

    async def _get_client(self):
        if self._client is None:
            try:
                self._client = await acreate_client(self.url, self.key)
            except Exception as e:
                raise SyncError(f"Cannot connect to Supabase: {e}") from e
        return self._client

    async def read(self, profile_id):
        client = await self._get_client()
        try:
            response = await client.table(self.table).select("data").eq("id", profile_id).limit(1).execute()
        except Exception as e:
            raise SyncError(f"Read failed for {profile_id}: {e}") from e
        rows = response.data or []
        return rows[0]["data"] if rows else None

    async def write(self, profile_id, document):
        client = await self._get_client()
        row = {"id": profile_id, "data": document, "updated_at": document.get("timestamp", 0)}
        try:
            await client.table(self.table).upsert(row, on_conflict="id").execute()
        except Exception as e:
            raise SyncError(f"Write failed for {profile_id}: {e}") from e

    async def subscribe(self, profile_id, callback):
        client = await self._get_client()

        def on_change(payload):
            record = _record_from_payload(payload)
            if record and record.get("id") == profile_id:
                callback(record.get("data"))

        try:
            channel = client.channel(f"profile-{profile_id}")
            channel.on_postgres_changes(
                "*", schema="public", table=self.table,
                filter=f"id=eq.{profile_id}", callback=on_change,
            )
            await channel.subscribe()
        except Exception as e:
            raise SyncError(f"Subscribe failed for {profile_id}: {e}") from e
        return channel

    async def unsubscribe(self, handle):
        client = await self._get_client()
        try:
            await client.remove_channel(handle)
        except Exception as e:
            raise SyncError(f"Unsubscribe failed: {e}") from e


def make_remote(settings) -> RemoteStore | None:
    """Supabase when credentials are configured, otherwise local-only."""
    if settings.remote_configured:
        return SupabaseRemote(settings.supabase_url, settings.supabase_key)
    return None


class SyncReconciler:
    """Keeps a ProgressStore consistent with its remote copy.

    Sync is best-effort: failures only change `status`, local work never waits
    on or fails because of the remote.
    """

    def __init__(
        self,
        progress,
        remote: RemoteStore | None = None,
        *,
        debounce: float = DELAYS.save_debounce,
        profile_prefix: str = "trainer",
        on_data_change=None,
        on_status=None,
        now_ms=None,
    ):
        self.progress = progress
        self.remote = remote
        self.debounce = debounce
        self.profile_prefix = profile_prefix
        self.on_data_change = on_data_change
        self.on_status = on_status
        self._now_ms = now_ms or (lambda: int(time.time() * 1000))
        self.status = SyncStatus.LOADING
        self.profile_id = None
        self.last_timestamp = 0
        self._saving = False
        self._resave = False
        self._pending = None
        self._subscription = None

    @property
    def saving(self) -> bool:
        return self._saving

    def _set_status(self, status: SyncStatus) -> None:
        if status == self.status:
            return
        self.status = status
        logger.debug("Sync status: %s", status.value)
        if self.on_status is not None:
            self.on_status(status)

    def _next_timestamp(self) -> int:
        return max(self._now_ms(), self.last_timestamp + 1)

    # --- outbound ---

    def schedule_save(self) -> None:
        """Coalesce saves: restart the debounce window on every call."""
        if self.remote is None or self.profile_id is None:
            return
        if self._pending is not None:
            self._pending.cancel()
        self._pending = asyncio.get_running_loop().create_task(self._delayed_save())

    async def _delayed_save(self) -> None:
        await asyncio.sleep(self.debounce)
        self._pending = None
        await self.save_now()

    async def save_now(self) -> bool:
        """Write the full current snapshot. Never raises."""
        if self.remote is None or self.profile_id is None:
            return False
        if self._saving:
            self._resave = True
            return False
        self._saving = True
        self._set_status(SyncStatus.SYNCING)
        try:
            document = self.progress.to_document(self._next_timestamp())
            await self.remote.write(self.profile_id, document)
            self.last_timestamp = document["timestamp"]
            self._set_status(SyncStatus.CONNECTED)
            logger.info("Saved progress to profile %s", self.profile_id)
            return True
        except SyncError as e:
            logger.warning("Sync save failed: %s", e)
            self._set_status(SyncStatus.ERROR)
            return False
        finally:
            self._saving = False
            if self._resave:
                self._resave = False
                self.schedule_save()

    # --- inbound ---

    def handle_remote_update(self, document: dict | None) -> bool:
        """Apply a pushed document if it is newer than local state."""
        if self._saving:
            logger.debug("Ignoring remote update during local write")
            return False
        if not document:
            return False
        timestamp = document.get("timestamp") or 0
        if timestamp <= self.last_timestamp:
            logger.debug("Ignoring stale remote update (%s <= %s)", timestamp, self.last_timestamp)
            return False
        try:
            self.progress.apply_document(document)
        except ValueError as e:
            logger.warning("Ignoring malformed remote update: %s", e)
            return False
        self.last_timestamp = timestamp
        logger.info("Received update from profile %s", self.profile_id)
        if self.on_data_change is not None:
            self.on_data_change()
        return True

    async def _pull(self) -> bool:
        document = await self.remote.read(self.profile_id)
        if not document:
            return False
        try:
            self.progress.apply_document(document)
        except ValueError as e:
            raise SyncError(f"Stored profile {self.profile_id} is malformed: {e}") from e
        self.last_timestamp = document.get("timestamp") or 0
        if self.on_data_change is not None:
            self.on_data_change()
        return True

    async def _subscribe(self) -> None:
        self._subscription = await self.remote.subscribe(self.profile_id, self.handle_remote_update)

    async def _unsubscribe(self) -> None:
        if self._subscription is not None:
            handle, self._subscription = self._subscription, None
            await self.remote.unsubscribe(handle)

    # --- profile lifecycle ---

    async def start(self, profile_id: str | None = None) -> bool:
        """Attach to `profile_id` (or a new one): load it if it exists, else publish local state."""
        self.profile_id = profile_id or generate_profile_id(self.profile_prefix)
        if self.remote is None:
            logger.info("No remote store configured, working offline")
            self._set_status(SyncStatus.OFFLINE)
            return False
        self._set_status(SyncStatus.LOADING)
        try:
            await self._subscribe()
            if await self._pull():
                logger.info("Loaded progress from profile %s", self.profile_id)
                self._set_status(SyncStatus.CONNECTED)
            else:
                return await self.save_now()
        except SyncError as e:
            logger.warning("Sync unavailable: %s", e)
            self._set_status(SyncStatus.ERROR)
            return False
        return True

    async def connect(self, profile_id: str) -> bool:
        """Switch to another profile. Returns True if it existed remotely.

        A profile that does not exist yet is created from the current local state.
        """
        if not profile_id or self.remote is None:
            return False
        self._cancel_pending()
        try:
            await self._unsubscribe()
            self.profile_id = profile_id
            self.last_timestamp = 0
            await self._subscribe()
            if await self._pull():
                self._set_status(SyncStatus.CONNECTED)
                return True
        except SyncError as e:
            logger.warning("Connect to %s failed: %s", profile_id, e)
            self._set_status(SyncStatus.ERROR)
            return False
        await self.save_now()
        return False

    async def create_profile(self) -> str:
        """Move to a brand-new profile seeded with the current local state."""
        self._cancel_pending()
        new_id = generate_profile_id(self.profile_prefix)
        if self.remote is None:
            self.profile_id = new_id
            return new_id
        try:
            await self._unsubscribe()
            self.profile_id = new_id
            self.last_timestamp = 0
            await self._subscribe()
        except SyncError as e:
            logger.warning("Profile switch failed: %s", e)
            self._set_status(SyncStatus.ERROR)
            return new_id
        await self.save_now()
        return new_id

    async def close(self) -> None:
        """Flush a pending debounced save and drop the subscription."""
        if self._pending is not None:
            self._cancel_pending()
            await self.save_now()
        if self.remote is None:
            return
        try:
            await self._unsubscribe()
        except SyncError as e:
            logger.warning("Unsubscribe failed: %s", e)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
