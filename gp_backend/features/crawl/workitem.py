"""
Crawl work items.

One WorkItem tracks one remote folder through the crawl:

- START: created when the folder is discovered, carrying two sub-requests
  (the folder's children listing and its cache document). Once the batcher
  has filled in the responses, the engine enumerates the children.
- END: the folder's document is complete. It optionally carries one write
  sub-request to persist the document; once processed, the document is merged
  into the parent's.

Parents are never referenced directly; the engine finds a parent by
`cache_filename(path[:-1])` in its waiting table.
"""
from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote

from ...config import SCHEMA_VERSION
from ..geo.models import CacheDocument, GeoItem, Position, numdate_from_iso, round5

CHILD_SELECT = "name,id,cTag,eTag,size,lastModifiedDateTime,folder,file,location,photo,video"


class WorkState(str, Enum):
    START = "START"
    END = "END"


# Allowed transitions; END is terminal.
TRANSITIONS: dict[WorkState, frozenset[WorkState]] = {
    WorkState.START: frozenset({WorkState.END}),
    WorkState.END: frozenset(),
}


class InvalidTransition(Exception):
    pass


@dataclass
class WorkItem:
    state: WorkState
    data: CacheDocument
    path: list[str]
    requests: list[dict[str, Any]] = field(default_factory=list)
    responses: dict[str, dict[str, Any]] = field(default_factory=dict)
    remaining_subfolders: int = 0

    def __post_init__(self) -> None:
        if self.requests and self.responses:
            raise ValueError("work item cannot hold pending requests and responses at once")
        if self.state is WorkState.END and any(not str(r.get("id", "")).startswith("write-") for r in self.requests):
            raise ValueError("END work item may only carry a cache write request")

    @property
    def cache_name(self) -> str:
        return cache_filename(self.path)

    @property
    def is_root(self) -> bool:
        return not self.path

    def owns_request(self, request_id: str) -> bool:
        return any(r.get("id") == request_id for r in self.requests)

    def receive(self, responses: dict[str, dict[str, Any]]) -> None:
        """Swap pending requests for their responses."""
        self.requests = []
        self.responses = dict(responses)

    def children_response(self) -> dict[str, Any]:
        return self.responses.get(f"children-{self.data.id}") or {}

    def cache_response(self) -> dict[str, Any]:
        return self.responses.get(f"cache-{self.data.id}") or {}


def cache_filename(path: list[str]) -> str:
    if not path:
        return "index.json"
    return "_".join(path) + ".json"


def approot_content_url(path: list[str]) -> str:
    return f"/me/drive/special/approot:/{quote(cache_filename(path))}:/content"


def serialize_document(document: CacheDocument) -> str:
    return json.dumps(document.to_dict(), separators=(",", ":"), ensure_ascii=False)


def _start_requests(item_id: str, path: list[str]) -> list[dict[str, Any]]:
    return [
        {
            "id": f"children-{item_id}",
            "method": "GET",
            "url": f"/me/drive/items/{item_id}/children?$top=10000&$expand=tags,thumbnails&$select={CHILD_SELECT}",
        },
        {
            "id": f"cache-{item_id}",
            "method": "GET",
            "url": approot_content_url(path),
        },
    ]


def start_work_item(drive_item: dict[str, Any], path: list[str]) -> WorkItem:
    """A START item with two requests: the folder's children, and its cache document."""
    item_id = str(drive_item["id"])
    return WorkItem(
        state=WorkState.START,
        requests=_start_requests(item_id, path),
        data=CacheDocument(
            schema_version=SCHEMA_VERSION,
            id=item_id,
            size=int(drive_item.get("size") or 0),
            last_modified_date_time=str(drive_item.get("lastModifiedDateTime") or ""),
            c_tag=str(drive_item.get("cTag") or ""),
            e_tag=str(drive_item.get("eTag") or ""),
        ),
        path=list(path),
    )


def refetch_work_item(item: WorkItem) -> WorkItem:
    """The same START item with its two requests pending again, responses dropped."""
    if item.state is not WorkState.START:
        raise InvalidTransition(f"{item.cache_name}: only START items can be refetched")
    return WorkItem(state=WorkState.START, data=item.data, path=item.path, requests=_start_requests(item.data.id, item.path))


def end_work_item(item: WorkItem, *, data: CacheDocument | None = None, write: bool = True) -> WorkItem:
    """
    Transition `item` to END. With `write`, the END item carries one request
    persisting its document through the batch endpoint.

    The batch endpoint mangles JSON bodies: an object stored as application/json
    arrives as a zero-byte file, and a JSON string is rejected. A base64 string
    sent as text/plain is stored intact and later served back as application/json.
    """
    if WorkState.END not in TRANSITIONS[item.state]:
        raise InvalidTransition(f"{item.cache_name}: {item.state.value} -> END")
    document = data if data is not None else item.data
    requests: list[dict[str, Any]] = []
    if write:
        encoded = base64.b64encode(serialize_document(document).encode("utf-8")).decode("ascii")
        requests.append(
            {
                "id": f"write-{document.id}",
                "method": "PUT",
                "url": approot_content_url(item.path),
                "body": encoded,
                "headers": {"Content-Type": "text/plain"},
            }
        )
    return WorkItem(
        state=WorkState.END,
        data=document,
        path=item.path,
        requests=requests,
        remaining_subfolders=item.remaining_subfolders,
    )


def is_geotagged(drive_item: dict[str, Any]) -> bool:
    location = drive_item.get("location") or {}
    thumbnails = drive_item.get("thumbnails") or []
    small = (thumbnails[0] or {}).get("small") if thumbnails else None
    photo = drive_item.get("photo") or {}
    return bool(
        location.get("latitude")
        and location.get("longitude")
        and small
        and small.get("url")
        and photo.get("takenDateTime")
    )


def geo_item_from_drive_item(drive_item: dict[str, Any], folder_index: int) -> GeoItem:
    location = drive_item["location"]
    return GeoItem(
        id=str(drive_item["id"]),
        name=str(drive_item.get("name") or "").lower(),
        position=Position(lat=round5(location["latitude"]), lng=round5(location["longitude"])),
        date=numdate_from_iso(drive_item["photo"]["takenDateTime"]),
        thumbnail_url=str(drive_item["thumbnails"][0]["small"]["url"]),
        folder_index=folder_index,
        tags=[str(t.get("name") or "").lower() for t in (drive_item.get("tags") or []) if isinstance(t, dict)],
    )
