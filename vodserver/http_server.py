import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError

from .catalog import AssetCatalog
from .config import ServerConfig
from .errors import InvalidRequest, TranscodeFailure, VideoServerError
from .models import JobState, PlaybackUpdate, TranscodeStatus
from .orchestrator import TranscodeOrchestrator
from .pipeline.util import get_mime_type, transcoded_filename
from .playback import ClientKeyFunc, PlaybackStore, remote_address_key
from .streaming.ranges import resolve_range
from .streaming.responder import ContentResponder, FileSource

logger = logging.getLogger("video_server")

# Placeholder until track extraction exists
PLACEHOLDER_METADATA = {
    "subtitles": ["English", "Spanish"],
    "audioTracks": ["English", "Hindi"],
}


class VideoHTTPServer:
    def __init__(
        self,
        config: ServerConfig,
        catalog: AssetCatalog,
        orchestrator: TranscodeOrchestrator,
        playback: PlaybackStore,
        client_key: Optional[ClientKeyFunc] = None,
    ):
        self.config = config
        self.catalog = catalog
        self.orchestrator = orchestrator
        self.playback = playback
        self.client_key = client_key or remote_address_key
        self.responder = ContentResponder(config.STREAM_CHUNK_SIZE)
        self.app = FastAPI(title="Video Streaming Server", lifespan=self.lifespan)
        self.setup_routes()
        self.mount_static()

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        logger.info(f"Serving videos from {self.config.VIDEO_DIR}")
        yield
        await self.orchestrator.shutdown()
        self.playback.clear()
        self.catalog.clear()

    def setup_routes(self):
        """Setup API routes"""

        @self.app.exception_handler(VideoServerError)
        async def handle_video_server_error(request: Request, exc: VideoServerError):
            if exc.status_code >= 500:
                logger.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.details or ''}".rstrip())
            if not exc.has_body:
                return Response(status_code=exc.status_code, headers=exc.headers)
            return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=exc.headers)

        @self.app.get("/healthz")
        async def health_check():
            """Health check endpoint"""
            return {"ok": True, "status": "healthy", "transcode": self.orchestrator.get_stats()}

        @self.app.get("/videos")
        async def list_videos():
            """List videos with their transcode status"""
            assets = await run_in_threadpool(self.catalog.list_assets)
            return [
                {
                    "original": asset.id,
                    "transcoded": transcoded_filename(asset.id),
                    "isTranscoded": asset.is_transcoded,
                    "transcodeStatus": asset.transcode_status.value,
                }
                for asset in assets
            ]

        @self.app.get("/metadata/{filename}")
        async def get_metadata(filename: str):
            """Track metadata (static placeholder)"""
            await run_in_threadpool(self.catalog.get_asset, filename)
            return PLACEHOLDER_METADATA

        @self.app.get("/stream/{filename}")
        async def stream_video(filename: str, request: Request):
            """Range-aware playback, preferring the transcoded file"""
            asset = await run_in_threadpool(self.catalog.get_asset, filename)
            path = await run_in_threadpool(self.catalog.resolve_playback_path, asset)
            source = await FileSource.open(path)
            decision = resolve_range(request.headers.get("range"), source.size)
            return await self.responder.respond(decision, source, get_mime_type(path))

        @self.app.get("/download/{filename}")
        async def download_video(filename: str):
            """Download the original file as an attachment"""
            asset = await run_in_threadpool(self.catalog.get_asset, filename)
            return FileResponse(asset.path, media_type=asset.mime_type, filename=asset.id)

        @self.app.post("/transcode/{filename}")
        async def transcode_video(filename: str, wait: Optional[bool] = None):
            """
            Start or join a transcode.

            Returns the job id immediately unless wait=true (or TRANSCODE_WAIT),
            in which case the request is held until the encode finishes.
            """
            asset = await run_in_threadpool(self.catalog.get_asset, filename)
            if asset.transcode_status is TranscodeStatus.READY:
                return {
                    "message": "Video already transcoded",
                    "transcodedFilename": os.path.basename(asset.transcoded_path),
                }

            job = await self.orchestrator.request_transcode(asset.id)
            if not (self.config.TRANSCODE_WAIT if wait is None else wait):
                return {
                    "message": "Transcoding started",
                    "jobId": job.id,
                    "status": job.state.value,
                }

            job = await self.orchestrator.wait(job.id)
            if job.state is not JobState.SUCCEEDED:
                raise TranscodeFailure("Failed to transcode video", job.error)
            return {
                "message": "Video transcoded successfully",
                "transcodedFilename": os.path.basename(job.output_path),
                "jobId": job.id,
            }

        @self.app.get("/transcode/status/{job_id}")
        async def transcode_status(job_id: str):
            """Get transcode job status"""
            return self.orchestrator.get_status(job_id)

        @self.app.get("/transcode/jobs")
        async def transcode_jobs():
            """List retained transcode jobs"""
            return {
                "jobs": self.orchestrator.list_jobs(),
                "summary": self.orchestrator.get_stats(),
            }

        @self.app.post("/transcode/stop/{job_id}")
        async def transcode_stop(job_id: str):
            """Stop a queued or running transcode job"""
            stopped = await self.orchestrator.cancel(job_id, reason="Stopped by request")
            return {
                "message": "Transcode stopped" if stopped else "Transcode already finished",
                "job": self.orchestrator.get_status(job_id),
            }

        @self.app.post("/save-playback")
        async def save_playback(request: Request):
            """Save the playback position of the calling client"""
            try:
                update = PlaybackUpdate.model_validate(await request.json())
            except (ValueError, ValidationError):
                raise InvalidRequest("Invalid data")

            self.playback.save(self.client_key(request), update.video, update.position)
            return {"message": "Playback position saved"}

        @self.app.get("/get-playback/{filename}")
        async def get_playback(filename: str, request: Request):
            """Get the playback position of the calling client"""
            return {"position": self.playback.get(self.client_key(request), filename)}

    def mount_static(self):
        """Serve the bundled UI, if present, underneath the API routes"""
        static_dir = self.config.STATIC_DIR
        if static_dir and os.path.isdir(static_dir):
            self.app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
            logger.info(f"Serving static files from {static_dir}")

    def run(self):
        """Run the HTTP server until interrupted"""
        logger.info(f"Video streaming server running on http://{self.config.HOST}:{self.config.PORT}")
        uvicorn.run(
            self.app,
            host=self.config.HOST,
            port=self.config.PORT,
            log_level="warning",
            timeout_graceful_shutdown=self.config.SHUTDOWN_GRACE_SEC,
        )

