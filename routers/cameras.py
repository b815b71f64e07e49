"""Camera management routes.

Every mutation that can change the set of active cameras triggers a full
stream reconciliation. Camera ids are positions in the stored list.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger

from core.errors import BadRequest
from core.stream_entry import stream_id_for
from core.stream_supervisor import StreamSupervisor
from models.camera import Camera, serialize
from modules.camera_directory import CameraDirectory
from schemas.camera import CameraActiveUpdate, CameraCreate, CameraUpdate, DisplayNameUpdate
from utils.url import is_valid_rtsp_url, mask_credentials

router = APIRouter(prefix="/api")


def _directory(request: Request) -> CameraDirectory:
    return request.app.state.directory


def _supervisor(request: Request) -> StreamSupervisor:
    return request.app.state.supervisor


def _require_fields(name: str, rtsp_url: str) -> None:
    if not name or not rtsp_url:
        raise BadRequest("name and rtspUrl are required")
    if not is_valid_rtsp_url(rtsp_url):
        raise BadRequest("rtspUrl must look like rtsp://[user:pass@]host:port/path")


def _public(cam: Camera) -> dict:
    data = serialize(cam)
    data["rtspUrl"] = mask_credentials(cam.source_url)
    data["id"] = cam.index
    return data


@router.get("/cameras/all")
async def list_all_cameras(request: Request) -> list[dict]:
    return [_public(cam) for cam in _directory(request).list_all()]


@router.get("/cameras")
async def list_active_cameras(request: Request) -> list[dict]:
    return [
        {
            "id": cam.index,
            "name": cam.name,
            "displayName": cam.display_name,
            "ip": cam.ip,
            "hlsUrl": f"/streams/{stream_id_for(cam.index)}.m3u8",
            "rtspUrl": mask_credentials(cam.source_url),
        }
        for cam in _directory(request).list_active()
    ]


@router.post("/cameras/add", status_code=201)
async def add_camera(payload: CameraCreate, request: Request) -> dict:
    _require_fields(payload.name, payload.rtspUrl)
    cam = _directory(request).add(payload.name, payload.rtspUrl, payload.active)
    if cam.active:
        await _supervisor(request).reconcile()
    return {"message": "camera added", "camera": _public(cam)}


@router.post("/cameras/restart-streams")
async def restart_streams(request: Request) -> dict:
    logger.info("Restarting all streams on request")
    cameras = await _supervisor(request).reconcile()
    return {
        "message": f"streams restarted, {len(cameras)} active cameras",
        "activeCameras": [cam.name for cam in cameras],
    }


@router.put("/cameras/{cam_id}")
async def update_camera_status(cam_id: int, payload: CameraActiveUpdate, request: Request) -> dict:
    if payload.active is None:
        raise BadRequest('"active" must be a boolean')
    cam = _directory(request).set_active(cam_id, payload.active)
    await _supervisor(request).reconcile()
    return {"message": "camera updated", "camera": _public(cam)}


@router.put("/cameras/{cam_id}/update")
async def update_camera(cam_id: int, payload: CameraUpdate, request: Request) -> dict:
    _require_fields(payload.name, payload.rtspUrl)
    directory = _directory(request)
    was_active = directory.get(cam_id).active
    cam = directory.update(cam_id, payload.name, payload.rtspUrl, payload.active)
    if was_active or cam.active:
        await _supervisor(request).reconcile()
    return {"message": "camera updated", "camera": _public(cam)}


@router.put("/cameras/{cam_id}/display-name")
async def update_display_name(cam_id: int, payload: DisplayNameUpdate, request: Request) -> dict:
    name = (payload.displayName or "").strip()
    if not name:
        raise BadRequest("a display name is required")
    cam = _directory(request).set_display_name(cam_id, name)
    return {"message": "display name updated", "camera": _public(cam)}


@router.delete("/cameras/{cam_id}")
async def delete_camera(cam_id: int, request: Request) -> dict:
    removed = _directory(request).delete(cam_id)
    if removed.active:
        await _supervisor(request).reconcile()
    return {"message": "camera deleted", "deletedCamera": _public(removed)}


@router.get("/streams/status")
async def streams_status(request: Request) -> JSONResponse:
    supervisor = _supervisor(request)
    return JSONResponse(
        {"generation": supervisor.generation, "streams": supervisor.status()}
    )
