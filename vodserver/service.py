"""
Main server service.

Wires configuration, logging, the storage adapter and the catalog,
transcode and playback components into the HTTP server.
"""

import sys
import logging
from typing import Optional, Dict, Any

from fastapi import FastAPI

from .adapters.base import AssetStore
from .adapters.local_adapter import LocalDirectoryStore
from .catalog import AssetCatalog
from .config import ServerConfig
from .http_server import VideoHTTPServer
from .logging_setup import setup_logging, log_exception
from .orchestrator import TranscodeOrchestrator
from .pipeline.transcode import FFmpegRunner
from .pipeline.util import ensure_dir
from .playback import ClientKeyFunc, PlaybackStore, get_client_key_func

logger = logging.getLogger("video_server")


class VideoServerService:
    """Owns the server components and their lifecycle"""

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig.from_env()
        self.store: Optional[AssetStore] = None
        self.catalog: Optional[AssetCatalog] = None
        self.orchestrator: Optional[TranscodeOrchestrator] = None
        self.playback: Optional[PlaybackStore] = None
        self.http_server: Optional[VideoHTTPServer] = None

    def initialize(self, runner: Optional[FFmpegRunner] = None,
                   client_key: Optional[ClientKeyFunc] = None,
                   configure_logging: bool = True):
        """Initialize components based on configuration"""
        try:
            if configure_logging:
                setup_logging(self.config.LOG_LEVEL, self.config.LOG_DIR)

            self.config.validate()
            ensure_dir(self.config.TRANSCODED_DIR)

            self.store = LocalDirectoryStore(self.config.VIDEO_DIR)
            self.catalog = AssetCatalog(self.store, self.config.TRANSCODED_DIR)
            self.orchestrator = TranscodeOrchestrator(self.config, self.catalog, runner)
            self.playback = PlaybackStore()
            self.http_server = VideoHTTPServer(
                self.config,
                self.catalog,
                self.orchestrator,
                self.playback,
                client_key or get_client_key_func(self.config.CLIENT_KEY_MODE),
            )

            logger.info("Video server initialized successfully")

        except Exception as e:
            log_exception(logger, f"Failed to initialize video server: {e}")
            raise

    @property
    def app(self) -> FastAPI:
        return self.http_server.app

    def start(self):
        """Run the HTTP server; returns after shutdown"""
        self.http_server.run()

    def get_stats(self) -> Dict[str, Any]:
        stats = {
            'config': {
                'video_dir': self.config.VIDEO_DIR,
                'transcoded_dir': self.config.TRANSCODED_DIR,
                'client_key_mode': self.config.CLIENT_KEY_MODE,
            }
        }
        if self.orchestrator:
            stats['transcode'] = self.orchestrator.get_stats()
        if self.playback is not None:
            stats['playback_records'] = len(self.playback)
        return stats


def create_app(config: Optional[ServerConfig] = None,
               runner: Optional[FFmpegRunner] = None,
               client_key: Optional[ClientKeyFunc] = None) -> FastAPI:
    """Build a ready-to-serve application, e.g. for `uvicorn vodserver.service:create_app --factory`"""
    service = VideoServerService(config)
    service.initialize(runner=runner, client_key=client_key, configure_logging=config is None)
    return service.app


def main():
    """Main entry point"""
    service = VideoServerService()

    try:
        service.initialize()
        service.start()
    except Exception as e:
        log_exception(logger, f"Video server failed to start: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
