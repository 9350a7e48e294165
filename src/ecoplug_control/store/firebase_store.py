"""Firebase Realtime Database binding of the document store, through `firebase_admin`.

Patches go through `Reference.update`, whose keys may be relative paths
(multi-location updates), so sibling sensor fields written concurrently by the
outlets are never overwritten. Subscriptions use `Reference.listen`, which
streams changes on a background thread managed by the SDK.
"""

from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials, db, exceptions

from ecoplug_control.errors import ConfigurationError, StoreUnavailableError, StoreWriteError
from ecoplug_control.store.base import ChangeCallback, DocumentStore, Unsubscribe, join_path
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

APP_NAME = "ecoplug-control"


def initialize_app(
    database_url: Optional[str],
    credentials_path: Optional[str] = None,
    timeout: float = 10.0,
) -> firebase_admin.App:
    """Returns the Firebase app of the engine, initializing it on first use.

    Args:
        database_url: URL of the database, e.g.
                      `https://example-default-rtdb.firebaseio.com`.
        credentials_path: Service account key file. Application Default
                          Credentials are used when not given.
        timeout: HTTP timeout in seconds for database calls.

    Raises:
        ConfigurationError: If no database URL is configured or the
                            credentials cannot be loaded.
    """
    if not database_url:
        raise ConfigurationError(
            "FIREBASE_DATABASE_URL must be set to use the Firebase store"
        )
    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        pass

    try:
        if credentials_path:
            credential = credentials.Certificate(credentials_path)
        else:
            credential = credentials.ApplicationDefault()
    except (OSError, ValueError) as ex:
        raise ConfigurationError(f"Cannot load Firebase credentials: {ex}") from ex

    logger.info("Connecting to Firebase database %s", database_url)
    return firebase_admin.initialize_app(
        credential,
        {"databaseURL": database_url, "httpTimeout": timeout},
        name=APP_NAME,
    )


class FirebaseStore(DocumentStore):
    """Realtime Database client.

    Args:
        database_url: URL of the database.
        credentials_path: Optional service account key file.
        timeout: Request timeout in seconds.
        app: An already initialized `firebase_admin.App` (injected by tests).
    """

    def __init__(
        self,
        database_url: Optional[str],
        credentials_path: Optional[str] = None,
        timeout: float = 10.0,
        app: Optional[firebase_admin.App] = None,
    ) -> None:
        self._app = app or initialize_app(database_url, credentials_path, timeout)

    def _reference(self, path: str) -> db.Reference:
        return db.reference("/" + join_path(path), app=self._app)

    def fetch(self, path: str) -> Optional[Any]:
        try:
            data = self._reference(path).get()
        except (exceptions.FirebaseError, ValueError) as ex:
            raise StoreUnavailableError(path, str(ex)) from ex
        logger.debug("Fetched %s", path)
        return data

    def patch(self, path: str, fields: Dict[str, Any]) -> None:
        if not fields:
            return
        try:
            self._reference(path).update(fields)
        except (exceptions.FirebaseError, ValueError) as ex:
            raise StoreWriteError(path, str(ex)) from ex
        logger.debug("Patched %s with %s", path, fields)

    def push(self, path: str, value: Any) -> str:
        try:
            child = self._reference(path).push(value)
        except (exceptions.FirebaseError, ValueError) as ex:
            raise StoreWriteError(path, str(ex)) from ex
        return str(child.key)

    def subscribe(self, path: str, on_change: ChangeCallback) -> Unsubscribe:
        def listener(event: db.Event) -> None:
            if event.event_type not in ("put", "patch"):
                return
            try:
                on_change(join_path(path, event.path or ""), event.data)
            except Exception as ex:
                logger.error("Subscriber for %s failed: %s", path, ex, exc_info=True)

        try:
            registration = self._reference(path).listen(listener)
        except (exceptions.FirebaseError, ValueError) as ex:
            raise StoreUnavailableError(path, str(ex)) from ex

        def unsubscribe() -> None:
            registration.close()

        return unsubscribe
