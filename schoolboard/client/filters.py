"""
Cascading dependent filters.

A ``FilterChain`` keeps an ordered chain of selectors (branch, academic year,
class, subject, ...) consistent with the server:

* changing selector *i* clears the value and option list of every selector
  after it, then loads the options of selector *i+1* once selectors ``0..i``
  are all set;
* once every selector is set, the primary dataset is loaded with the full
  selection plus any extra parameters (date range, grade type, status);
* a failed load is logged and leaves an empty option list, or no dataset with
  status ``error``. Nothing is retried.

Every load is tagged with the generation token of the slot it writes to. A
response whose token is no longer current is dropped, so the last request
issued wins even when responses arrive out of order, and nothing is written
after ``close()``.

Loads run inline by default. Pass a ``concurrent.futures.Executor`` to run
them in the background; completion callbacks then apply results under the
chain's lock.
"""

import enum
import logging
import threading
from concurrent.futures import CancelledError, Executor, Future
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..services.date_ranges import quick_range

logger = logging.getLogger(__name__)


class ChainStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    POPULATED = "populated"
    ERROR = "error"


@dataclass(frozen=True)
class Option:
    id: str
    name: str


@dataclass(frozen=True)
class FilterField:
    name: str
    options_path: str
    label: str = ""


OptionLoader = Callable[[FilterField, Dict[str, str]], Sequence[Option]]
DatasetLoader = Callable[[Dict[str, str]], Any]
Subscriber = Callable[["FilterChain"], None]


def _normalize(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


class FilterChain:
    def __init__(
        self,
        fields: Sequence[FilterField],
        load_options: OptionLoader,
        load_dataset: DatasetLoader,
        executor: Optional[Executor] = None,
    ):
        if not fields:
            raise ValueError("A filter chain needs at least one field")
        names = [f.name for f in fields]
        if len(set(names)) != len(names):
            raise ValueError("Filter field names must be unique")

        self.fields = tuple(fields)
        self._position = {f.name: i for i, f in enumerate(self.fields)}
        self._load_options = load_options
        self._load_dataset = load_dataset
        self._executor = executor
        self._lock = threading.RLock()
        self._subscribers: List[Subscriber] = []
        self._closed = False

        self._selection = {name: "" for name in names}
        self._params: Dict[str, str] = {}
        self._options: Dict[str, List[Option]] = {name: [] for name in names}
        self._option_status = {name: ChainStatus.IDLE for name in names}
        self._option_tokens = {name: 0 for name in names}

        self._dataset: Any = None
        self._status = ChainStatus.IDLE
        self._error: Optional[BaseException] = None
        self._dataset_token = 0

    # Read side

    @property
    def selection(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._selection)

    @property
    def params(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._params)

    @property
    def is_complete(self) -> bool:
        with self._lock:
            return all(self._selection.values())

    @property
    def status(self) -> ChainStatus:
        return self._status

    @property
    def dataset(self) -> Any:
        return self._dataset

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def closed(self) -> bool:
        return self._closed

    def options(self, name: str) -> List[Option]:
        with self._lock:
            return list(self._options[self._field(name).name])

    def option_status(self, name: str) -> ChainStatus:
        return self._option_status[self._field(name).name]

    def query_params(self) -> Dict[str, str]:
        """Chain fields in chain order, then the extra params in insertion order."""
        with self._lock:
            query = {name: value for name, value in self._selection.items() if value}
            query.update(self._params)
            return query

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # Write side

    def start(self) -> None:
        """Load the first selector's options; call once after construction."""
        with self._lock:
            self._ensure_open()
            job = self._begin_options(self.fields[0])
        self._notify()
        self._dispatch(job)

    def select(self, name: str, value) -> None:
        value = _normalize(value)
        with self._lock:
            self._ensure_open()
            field = self._field(name)
            if self._selection[field.name] == value:
                return
            index = self._position[field.name]
            self._selection[field.name] = value
            for downstream in self.fields[index + 1:]:
                self._clear_field(downstream.name)

            jobs = []
            upstream_set = all(self._selection[f.name] for f in self.fields[: index + 1])
            if upstream_set and index + 1 < len(self.fields):
                jobs.append(self._begin_options(self.fields[index + 1]))
            jobs.append(self._begin_dataset())
        self._notify()
        for job in jobs:
            self._dispatch(job)

    def set_params(self, **params) -> None:
        """Set extra dataset parameters; empty values remove the parameter."""
        with self._lock:
            self._ensure_open()
            updated = dict(self._params)
            for key, value in params.items():
                if key in self._position:
                    raise ValueError(f"{key} is a chain field; use select()")
                if isinstance(value, date):
                    value = value.isoformat()
                value = _normalize(value)
                if value:
                    updated[key] = value
                else:
                    updated.pop(key, None)
            if updated == self._params:
                return
            self._params = updated
            job = self._begin_dataset()
        self._notify()
        self._dispatch(job)

    def apply_quick_range(self, kind: str, today: Optional[date] = None) -> None:
        self.set_params(**quick_range(kind, today).as_params())

    def refresh(self) -> None:
        """Issue the dataset load again for the current selection."""
        with self._lock:
            self._ensure_open()
            job = self._begin_dataset()
        self._notify()
        self._dispatch(job)

    def reset(self) -> None:
        with self._lock:
            self._ensure_open()
            for field in self.fields:
                self._clear_field(field.name)
            self._params = {}
            self._begin_dataset()
        self.start()

    def close(self) -> None:
        """Stop the chain; responses still in flight are dropped."""
        with self._lock:
            self._closed = True
            for name in self._option_tokens:
                self._option_tokens[name] += 1
            self._dataset_token += 1
            self._subscribers.clear()

    # Internals, called with the lock held unless noted

    def _field(self, name: str) -> FilterField:
        try:
            return self.fields[self._position[name]]
        except KeyError:
            raise KeyError(f"Unknown filter field: {name}") from None

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Filter chain is closed")

    def _clear_field(self, name: str) -> None:
        self._selection[name] = ""
        self._options[name] = []
        self._option_status[name] = ChainStatus.IDLE
        self._option_tokens[name] += 1

    def _begin_options(self, field: FilterField):
        self._option_tokens[field.name] += 1
        token = self._option_tokens[field.name]
        self._option_status[field.name] = ChainStatus.LOADING
        position = self._position[field.name]
        upstream = {f.name: self._selection[f.name] for f in self.fields[:position]}

        def finish(result, exc):
            self._finish_options(field.name, token, result, exc)

        return (lambda: self._load_options(field, upstream), finish)

    def _begin_dataset(self):
        self._dataset_token += 1
        token = self._dataset_token
        self._error = None
        if not all(self._selection.values()):
            self._dataset = None
            self._status = ChainStatus.IDLE
            return None
        self._status = ChainStatus.LOADING
        query = self.query_params()

        def finish(result, exc):
            self._finish_dataset(token, result, exc)

        return (lambda: self._load_dataset(query), finish)

    def _finish_options(self, name, token, result, exc) -> None:
        with self._lock:
            if self._closed or token != self._option_tokens[name]:
                logger.debug("Dropping stale %s options", name)
                return
            if exc is not None:
                logger.error("Failed to load %s options", name, exc_info=exc)
                self._options[name] = []
                self._option_status[name] = ChainStatus.ERROR
            else:
                self._options[name] = list(result or [])
                self._option_status[name] = ChainStatus.POPULATED
        self._notify()

    def _finish_dataset(self, token, result, exc) -> None:
        with self._lock:
            if self._closed or token != self._dataset_token:
                logger.debug("Dropping stale dataset response")
                return
            if exc is not None:
                logger.error("Failed to load dataset for %s", self.query_params(), exc_info=exc)
                self._dataset = None
                self._error = exc
                self._status = ChainStatus.ERROR
            else:
                self._dataset = result
                self._status = ChainStatus.POPULATED
        self._notify()

    # Lock not held from here on.

    def _dispatch(self, job) -> None:
        if job is None:
            return
        load, finish = job
        if self._executor is None:
            try:
                result = load()
            except Exception as exc:
                finish(None, exc)
            else:
                finish(result, None)
            return

        def done(future: Future):
            if future.cancelled():
                finish(None, CancelledError())
                return
            exc = future.exception()
            finish(None if exc else future.result(), exc)

        self._executor.submit(load).add_done_callback(done)

    def _notify(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(self)
