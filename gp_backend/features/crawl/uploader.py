"""
Chunked upload for cache documents too large for the batch write path.
"""
from __future__ import annotations

from collections.abc import Callable
from urllib.parse import quote

from ...adapters.remote import FetchError
from ...config import UPLOAD_CHUNK_SIZE
from ...shared import get_logger
from .batcher import RemoteClient

logger = get_logger(__name__)


async def create_upload_session(client: RemoteClient, filename: str) -> str:
    url = f"/me/drive/special/approot:/{quote(filename)}:/createUploadSession"
    resp = await client.request(
        "POST",
        url,
        json_body={"item": {"@microsoft.graph.conflictBehavior": "replace"}},
        headers={"Content-Type": "application/json"},
    )
    if not resp.ok:
        raise FetchError.from_response(resp, url)
    upload_url = str((resp.json() or {}).get("uploadUrl") or "")
    if not upload_url:
        raise FetchError(resp.status, "no uploadUrl", resp.text(), url)
    return upload_url


async def multipart_upload(
    client: RemoteClient,
    filename: str,
    data: str | bytes,
    on_progress: Callable[[int, int], None],
    *,
    chunk_size: int = UPLOAD_CHUNK_SIZE,
) -> None:
    """
    Upload `data` to approot/`filename` through an upload session.

    Chunks go out strictly in order, each naming its byte range and the total
    size. Any failed chunk raises FetchError and abandons the upload.
    """
    payload = data.encode("utf-8") if isinstance(data, str) else data
    total = len(payload)
    upload_url = await create_upload_session(client, filename)
    logger.debug("Uploading %s in %d-byte chunks (%d bytes)", filename, chunk_size, total)

    sent = 0
    while sent < total:
        chunk = payload[sent:sent + chunk_size]
        end = sent + len(chunk) - 1
        # Upload URLs are pre-authorized; an Authorization header would be rejected.
        resp = await client.fetch(
            upload_url,
            method="PUT",
            data=chunk,
            headers={
                "Content-Length": str(len(chunk)),
                "Content-Range": f"bytes {sent}-{end}/{total}",
            },
        )
        if not resp.ok:
            raise FetchError.from_response(resp, filename)
        sent += len(chunk)
        on_progress(sent, total)
