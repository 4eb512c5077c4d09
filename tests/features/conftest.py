import base64
import json
from types import SimpleNamespace
from urllib.parse import quote, unquote

import pytest

from gp_backend.adapters.remote import GraphResponse

JSON_HEADERS = {"Content-Type": "application/json"}


def _json(status, body):
    return GraphResponse(status=status, headers=dict(JSON_HEADERS), body=json.dumps(body).encode("utf-8"))


def photo(item_id, lat, lng, taken="2019-08-05T17:42:22Z", size=100, tags=(), name=None):
    return {
        "id": item_id,
        "name": name or f"{item_id.upper()}.jpg",
        "size": size,
        "file": {"mimeType": "image/jpeg"},
        "location": {"latitude": lat, "longitude": lng},
        "photo": {"takenDateTime": taken},
        "thumbnails": [{"small": {"url": f"https://thumbs.example/{item_id}"}}],
        "tags": [{"name": t} for t in tags],
    }


def plain_file(item_id, size=100):
    return {"id": item_id, "name": f"{item_id}.txt", "size": size, "file": {"mimeType": "text/plain"}}


def folder(item_id, name, children):
    return {
        "id": item_id,
        "name": name,
        "size": sum(int(c.get("size") or 0) for c in children),
        "cTag": f"c-{item_id}",
        "eTag": f"e-{item_id}",
        "lastModifiedDateTime": "2024-01-01T00:00:00Z",
        "folder": {"childCount": len(children)},
        "_children": children,
    }


def public(drive_item):
    return {k: v for k, v in drive_item.items() if k != "_children"}


def sample_tree():
    """root(p1, Trips(p2, p3, d1, Jan(p5))); sizes 650 / 550 / 50."""
    jan = folder("f2", "Jan", [photo("p5", -33.87, 151.21, taken="2021-01-15T10:00:00Z", size=50)])
    trips = folder(
        "f1",
        "Trips",
        [
            photo("p2", 48.85, 2.35, taken="2019-08-06T09:00:00Z", size=200, tags=("Eiffel",)),
            photo("p3", 35.68, 139.69, taken="2020-01-01T12:00:00Z", size=200),
            plain_file("d1", size=100),
            jan,
        ],
    )
    return folder("root", "Pictures", [photo("p1", 47.6, -122.3, size=100), trips])


class FakeDrive:
    """In-memory remote store speaking just enough of the batch protocol for the crawler."""

    def __init__(self, root):
        self.root = root
        self.folders = {}
        self.cache = {}
        self.requested_urls = []
        self.batch_sizes = []
        self.thumbnail_fetches = []
        self.listing_failures = {}
        self.batch_429s = 0
        self.redirect_cache_reads = False
        self.fail_writes = False
        self.uploads = {}
        self.upload_ranges = []
        self.reindex()

    def reindex(self):
        self.folders = {}
        self._index(self.root)

    def _index(self, node):
        self.folders[node["id"]] = node
        for child in node["_children"]:
            if "folder" in child:
                self._index(child)

    async def request(self, method, url, *, json_body=None, data=None, headers=None):
        if url.endswith("/$batch"):
            if self.batch_429s > 0:
                self.batch_429s -= 1
                return GraphResponse(status=429, reason="Too Many Requests")
            requests = json_body["requests"]
            assert len(requests) <= 20
            self.batch_sizes.append(len(requests))
            return _json(200, {"responses": [self._sub_response(r) for r in requests]})
        if url.startswith("/me/drive/special/photos"):
            return _json(200, public(self.root))
        if url.endswith(":/createUploadSession"):
            name = unquote(url.split("approot:/")[1].split(":/")[0])
            self.uploads[name] = bytearray()
            return _json(200, {"uploadUrl": f"https://upload.example/{quote(name)}"})
        return _json(404, {"error": {"code": "itemNotFound"}})

    def _sub_response(self, request):
        rid, url = request["id"], request["url"]
        self.requested_urls.append(url)
        if "/children?" in url:
            folder_id = url.split("/me/drive/items/")[1].split("/children")[0]
            failures = self.listing_failures.get(folder_id)
            if failures:
                return {"id": rid, "status": 503, "headers": dict(JSON_HEADERS), "body": {"error": failures.pop(0)}}
            children = [public(c) for c in self.folders[folder_id]["_children"]]
            return {"id": rid, "status": 200, "headers": dict(JSON_HEADERS), "body": {"value": children}}

        name = unquote(url.split("approot:/")[1].split(":/content")[0])
        if request["method"] == "GET":
            if name not in self.cache:
                return {"id": rid, "status": 404, "headers": dict(JSON_HEADERS), "body": {"error": {"code": "itemNotFound"}}}
            if self.redirect_cache_reads:
                return {"id": rid, "status": 302, "headers": {"Location": f"https://content.example/{quote(name)}"}}
            encoded = base64.b64encode(json.dumps(self.cache[name]).encode("utf-8")).decode("ascii")
            return {"id": rid, "status": 200, "headers": dict(JSON_HEADERS), "body": encoded}

        assert request["headers"]["Content-Type"] == "text/plain"
        if self.fail_writes:
            return {"id": rid, "status": 507, "headers": dict(JSON_HEADERS), "body": {"error": {"code": "quotaLimitReached"}}}
        self.cache[name] = json.loads(base64.b64decode(request["body"]).decode("utf-8"))
        return {"id": rid, "status": 201, "headers": dict(JSON_HEADERS), "body": {"name": name}}

    async def fetch(self, url, *, method="GET", data=None, headers=None):
        if url.startswith("https://thumbs.example/"):
            self.thumbnail_fetches.append(url)
            return GraphResponse(status=200, headers={"Content-Type": "image/jpeg"}, body=b"img")
        if url.startswith("https://content.example/"):
            return _json(200, self.cache[unquote(url.rsplit("/", 1)[1])])
        if url.startswith("https://upload.example/"):
            name = unquote(url.rsplit("/", 1)[1])
            self.upload_ranges.append(headers["Content-Range"])
            buf = self.uploads[name]
            buf.extend(data)
            total = int(headers["Content-Range"].rsplit("/", 1)[1])
            if len(buf) == total:
                self.cache[name] = json.loads(bytes(buf).decode("utf-8"))
                return _json(201, {"name": name})
            return _json(202, {"nextExpectedRanges": [f"{len(buf)}-"]})
        return _json(404, {})


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class ProgressRecorder:
    def __init__(self):
        self.lines = []
        self.items = []

    def __call__(self, update):
        if update and not isinstance(update[0], str):
            self.items.extend(update)
        else:
            self.lines.append(list(update))

    def statuses(self):
        return [lines[2] for lines in self.lines if len(lines) == 3]


@pytest.fixture
def kit():
    return SimpleNamespace(
        photo=photo,
        plain_file=plain_file,
        folder=folder,
        sample_tree=sample_tree,
        FakeDrive=FakeDrive,
    )


@pytest.fixture
def drive():
    return FakeDrive(sample_tree())


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def progress():
    return ProgressRecorder()
