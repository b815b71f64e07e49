"""HLS playback routes backed by the artifact store."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse, Response

from modules.hls.artifacts import ArtifactStore

router = APIRouter()

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_MEDIA_TYPE = "video/mp2t"


def _store(request: Request) -> ArtifactStore:
    return request.app.state.store


@router.get("/streams/{name}")
async def stream_file(name: str, request: Request):
    """Serve a playlist or segment.

    A playlist for a stream without a running process is answered with the
    empty placeholder so players keep polling instead of failing.
    """
    store = _store(request)
    path = store.resolve(name)
    if path is None:
        raise HTTPException(status_code=404, detail="not_found")
    headers = {"Cache-Control": "no-cache"}
    if name.endswith(".m3u8"):
        stream_id = name[: -len(".m3u8")]
        return Response(
            content=store.read_playlist(stream_id),
            media_type=PLAYLIST_MEDIA_TYPE,
            headers=headers,
        )
    if not path.is_file():
        raise HTTPException(status_code=404, detail="not_found")
    return FileResponse(path, media_type=SEGMENT_MEDIA_TYPE)
