from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

ChangeCallback = Callable[[str, Any], None]
Unsubscribe = Callable[[], None]


def split_path(path: str) -> List[str]:
    """Splits a slash separated store path, ignoring empty segments."""
    return [segment for segment in str(path).split("/") if segment]


def join_path(*parts: str) -> str:
    segments: List[str] = []
    for part in parts:
        segments.extend(split_path(part))
    return "/".join(segments)


class DocumentStore(ABC):
    """Abstract hierarchical document store used by the control engine.

    Paths are slash separated (`devices/Outlet_1`). Patches merge the given
    fields into the document at a path; a field name may itself be a relative
    path (`control/device`) so nested values can be changed without rewriting
    their siblings. A `None` value deletes the field.
    """

    @abstractmethod
    def fetch(self, path: str) -> Optional[Any]:
        """Point-in-time read of the subtree at `path`, None when it does not exist.

        Raises:
            StoreUnavailableError: If the store cannot be reached.
        """
        pass

    @abstractmethod
    def patch(self, path: str, fields: Dict[str, Any]) -> None:
        """Merges `fields` into the document at `path`.

        Raises:
            StoreWriteError: If the write is rejected or the store cannot be reached.
        """
        pass

    @abstractmethod
    def push(self, path: str, value: Any) -> str:
        """Appends `value` under a new generated child of `path` and returns its key.

        Raises:
            StoreWriteError: If the write is rejected or the store cannot be reached.
        """
        pass

    @abstractmethod
    def subscribe(self, path: str, on_change: ChangeCallback) -> Unsubscribe:
        """Calls `on_change(changed_path, data)` whenever the subtree at `path` changes.

        Returns:
            A callable that stops the subscription.

        Raises:
            StoreUnavailableError: If the subscription cannot be opened.
        """
        pass
