import json
import os
import re
from dataclasses import dataclass, field, asdict
from typing import List, Optional
from urllib.parse import quote

import requests

from grafana_digest.logs import get_logger

log = get_logger(__name__)

# Grafana uids: letters, digits, '-' and '_', at most 40 characters
UID_RE = re.compile(r"[A-Za-z0-9_-]{1,40}")

FOLDER_TYPE = "dash-folder"


class GrafanaDigestError(Exception):
    """Base error; every subclass carries the operation that failed."""

    def __init__(self, op: str, detail: str):
        self.op = op
        self.detail = detail
        super().__init__(f"{op}: {detail}")


class ConfigurationError(GrafanaDigestError):
    pass


class NetworkError(GrafanaDigestError):
    pass


class ReadError(GrafanaDigestError):
    pass


class DecodeError(GrafanaDigestError):
    pass


class InvalidUIDError(GrafanaDigestError):
    pass


class HttpStatusError(GrafanaDigestError):
    def __init__(self, op: str, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(op, f"HTTP {status_code}: {body}")


@dataclass
class DashboardSummary:
    id: int = 0
    uid: str = ""
    title: str = ""
    uri: str = ""
    url: str = ""
    slug: str = ""
    type: str = ""
    tags: List[str] = field(default_factory=list)
    folder_id: int = 0
    folder_uid: str = ""
    folder_title: str = ""
    folder_url: str = ""
    description: str = ""

    # search hits use camelCase ("folderTitle"); matching ignores case
    _KEYS = {
        "id": "id", "uid": "uid", "title": "title", "uri": "uri", "url": "url",
        "slug": "slug", "type": "type", "tags": "tags",
        "folderid": "folder_id", "folderuid": "folder_uid",
        "foldertitle": "folder_title", "folderurl": "folder_url",
        "description": "description",
    }

    @classmethod
    def from_hit(cls, hit: dict) -> "DashboardSummary":
        kwargs = {}
        for key, value in hit.items():
            name = cls._KEYS.get(str(key).lower())
            if name is not None and value is not None:
                kwargs[name] = list(value) if name == "tags" else value
        return cls(**kwargs)

    def is_folder(self) -> bool:
        return self.type == FOLDER_TYPE

    def to_dict(self) -> dict:
        data = asdict(self)
        return {key: data[name] for key, name in self._KEYS.items()}


def _get(config: dict, endpoint: str, op: str, params: Optional[dict] = None) -> str:
    """
    GET <url>/<endpoint> with the bearer token and return the body text.

    The token is looked up in the environment on every call. Transport
    failures raise NetworkError, failures while reading the body raise
    ReadError and 4xx/5xx responses raise HttpStatusError.
    """
    url = f"{config['url'].rstrip('/')}/{endpoint.lstrip('/')}"
    headers = {"Authorization": f"Bearer {os.environ.get(config['token_env'], '')}"}
    log.debug("GET request", op=op, url=url, params=params)

    try:
        resp = requests.get(url, headers=headers, params=params,
                            timeout=config.get("timeout_sec"), stream=True)
    except requests.RequestException as e:
        raise NetworkError(op, str(e)) from e

    try:
        with resp:
            content = resp.content
    except requests.RequestException as e:
        raise ReadError(op, f"read body: {e}") from e

    # requests assumes ISO-8859-1 for text/* without a charset; prefer UTF-8 then
    encoding = "utf-8"
    if "charset=" in resp.headers.get("Content-Type", "").lower() and resp.encoding:
        encoding = resp.encoding
    try:
        body = content.decode(encoding, errors="replace")
    except LookupError:
        body = content.decode("utf-8", errors="replace")

    try:
        resp.raise_for_status()
    except requests.HTTPError as e:
        raise HttpStatusError(op, resp.status_code, body) from e
    return body


def get_user(config: dict) -> str:
    return _get(config, "user", "get_user")


def search_dashboards(config: dict, query: str = "%") -> List[DashboardSummary]:
    op = "search_dashboards"
    body = _get(config, "search", op, params={"query": query})
    strict = config.get("strict_json", False)

    try:
        hits = json.loads(body)
    except ValueError as e:
        if strict:
            raise DecodeError(op, f"invalid JSON: {e}") from e
        log.debug("discarding undecodable search response", op=op)
        return []

    if not isinstance(hits, list):
        if strict:
            raise DecodeError(op, f"expected a JSON array, got {type(hits).__name__}")
        return []
    return [DashboardSummary.from_hit(h) for h in hits if isinstance(h, dict)]


def get_dashboard(config: dict, uid: str) -> str:
    op = "get_dashboard"
    if not isinstance(uid, str) or not UID_RE.fullmatch(uid):
        raise InvalidUIDError(op, f"invalid dashboard uid {uid!r}")
    return _get(config, f"dashboards/uid/{quote(uid, safe='')}", op)


def get_description(body: str, strict: bool = False) -> str:
    """Pull dashboard.description out of a dashboard document, '' when absent."""
    try:
        doc = json.loads(body)
    except ValueError as e:
        if strict:
            raise DecodeError("get_description", f"invalid JSON: {e}") from e
        return ""

    dashboard = doc.get("dashboard") if isinstance(doc, dict) else None
    if not isinstance(dashboard, dict):
        return ""
    desc = dashboard.get("description")
    return desc if isinstance(desc, str) else ""
