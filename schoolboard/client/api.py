import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

import requests
from pydantic import BaseModel

from .filters import FilterField, Option

logger = logging.getLogger(__name__)

DEFAULT_API_URL = os.getenv("SCHOOLBOARD_API_URL", "http://localhost:8000")

_FILENAME_PATTERN = re.compile(r'filename="?([^";]+)"?')


class PortalError(Exception):
    """A request to the SchoolBoard API failed."""

    def __init__(self, status_code: Optional[int], detail: str):
        super().__init__(f"{status_code}: {detail}" if status_code else detail)
        self.status_code = status_code
        self.detail = detail


def _error_detail(response) -> str:
    try:
        detail = response.json().get("detail", response.text)
    except (ValueError, AttributeError):
        return response.text
    return detail if isinstance(detail, str) else str(detail)


class PortalClient:
    """Thin JSON client for the SchoolBoard API.

    ``session`` may be any object with a requests-style ``request`` method,
    which is how tests drive the client against an in-process app.
    """

    def __init__(self, base_url: Optional[str] = None, session=None, timeout: float = 30):
        self.base_url = (base_url or DEFAULT_API_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token: Optional[str] = None

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def request(self, method: str, path: str, params=None, json=None, data=None):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                data=data,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise PortalError(None, str(exc)) from exc
        if response.status_code >= 400:
            raise PortalError(response.status_code, _error_detail(response))
        return response

    def _json(self, method: str, path: str, **kwargs) -> Any:
        response = self.request(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def login(self, username: str, password: str) -> str:
        token = self._json(
            "POST", "/api/auth/login", data={"username": username, "password": password}
        )
        self.token = token["access_token"]
        return self.token

    def get(self, path: str, params: Optional[dict] = None) -> Any:
        return self._json("GET", path, params=params)

    def post(self, path: str, payload: Any = None) -> Any:
        return self._json("POST", path, json=payload)

    def put(self, path: str, payload: Any = None) -> Any:
        return self._json("PUT", path, json=payload)

    def patch(self, path: str, payload: Any = None) -> Any:
        return self._json("PATCH", path, json=payload)

    def delete(self, path: str) -> Any:
        return self._json("DELETE", path)

    def list_options(self, path: str, params: Optional[dict] = None) -> List[Option]:
        items = self.get(path, params) or []
        return [
            Option(
                id=str(item["id"]),
                name=item.get("name") or item.get("shortName") or str(item["id"]),
            )
            for item in items
        ]

    def download(self, path: str, params: Optional[dict], destination) -> Path:
        """Save an export to ``destination``; a directory gets the server's file name."""
        response = self.request("GET", path, params=params)
        target = Path(destination)
        if target.is_dir():
            match = _FILENAME_PATTERN.search(response.headers.get("content-disposition", ""))
            target = target / (match.group(1) if match else "download")
        target.write_bytes(response.content)
        logger.info("Saved %s to %s", path, target)
        return target

    # Loaders for FilterChain

    def option_loader(self):
        def load(field: FilterField, upstream: Dict[str, str]) -> List[Option]:
            return self.list_options(field.options_path, upstream)

        return load

    def dataset_loader(self, path: str, record: Optional[Type[BaseModel]] = None):
        def load(params: Dict[str, str]):
            data = self.get(path, params)
            return record.model_validate(data) if record is not None else data

        return load
