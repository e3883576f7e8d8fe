"""
Job submission, status and playlist routes for SeedStream
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from ...errors import InvalidInputError
from ...jobs import get_job_manager
from ...models import PlaylistResponse, StartStreamRequest, StartStreamResponse, StatusResponse

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_source(request: Request) -> Optional[Any]:
    """
    Pull the torrent reference out of the request.

    Accepts a multipart ``file`` field (torrent payload), a form ``magnet`` field,
    a JSON body ``{"magnet": ...}``, or a ``?magnet=`` query parameter.
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        upload = form.get("file")
        if isinstance(upload, UploadFile):
            data = await upload.read()
            return data or None
        magnet = form.get("magnet")
        return magnet or None

    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Malformed JSON body")
        if isinstance(body, dict):
            try:
                payload = StartStreamRequest.model_validate(body)
            except ValidationError:
                raise HTTPException(status_code=400, detail="Invalid request body")
            if payload.magnet:
                return payload.magnet

    return request.query_params.get("magnet") or None


async def _submit(source: Any) -> StartStreamResponse:
    try:
        job_id = await get_job_manager().submit(source)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return StartStreamResponse(unique_id=job_id)


@router.post("/start-stream", status_code=202, response_model=StartStreamResponse)
async def start_stream(request: Request):
    """Accept a magnet link or torrent file and start processing it."""
    source = await _read_source(request)
    if source is None:
        raise HTTPException(status_code=400, detail="Missing magnet link or torrent file")

    return await _submit(source)


@router.get("/start-stream", status_code=202, response_model=StartStreamResponse)
async def start_stream_query(magnet: Optional[str] = None):
    """Query-string form: GET /start-stream?magnet=..."""
    if not magnet:
        raise HTTPException(status_code=400, detail="Missing magnet link or torrent file")

    return await _submit(magnet)


@router.get("/status/{unique_id}", response_model=StatusResponse)
async def get_status(unique_id: str):
    """Latest status of a job. Unknown ids report an unknown status, not an error."""
    job_manager = get_job_manager()
    state = job_manager.get_state(unique_id)

    return StatusResponse(
        unique_id=unique_id,
        status=job_manager.get_status(unique_id),
        state=state.value if state else "unknown",
    )


@router.get("/playlist/{unique_id}", response_model=PlaylistResponse)
async def get_playlist(unique_id: str):
    """Playlist URLs published so far for a job."""
    results = get_job_manager().get_results(unique_id)
    if not results:
        raise HTTPException(status_code=404, detail="No playlists found for this ID")

    return PlaylistResponse(unique_id=unique_id, playlist_urls=results)
