"""Downstream HTTP surface: one FastAPI app per scrape target."""
from typing import List
import logging
import threading
import time

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST
import uvicorn

from staleproxy.config import Config, TargetConfig
from staleproxy.target import ScrapeTarget, UpstreamError

logger = logging.getLogger(__name__)

EXPOSITION_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


class ListenerError(Exception):
    """A downstream listener could not be started."""


class TargetAPI:
    """FastAPI app serving the filtered metrics of one target."""

    def __init__(self, target: ScrapeTarget, listen_port: int):
        self.target = target
        self.listen_port = listen_port
        self.app = FastAPI(title=f"staleproxy :{listen_port} -> {target.url}")

        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        # Plain def endpoints run in the threadpool, so scrapes may overlap;
        # ScrapeTarget serializes the tracker updates.
        @self.app.get("/metrics")
        def metrics():
            """Filtered upstream metrics."""
            try:
                result = self.target.scrape()
            except UpstreamError as e:
                raise HTTPException(status_code=502, detail=str(e))

            return Response(content=result.body, media_type=EXPOSITION_CONTENT_TYPE)

        @self.app.get("/healthz")
        def healthz():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": time.time()}

        @self.app.get("/status")
        def status():
            """Current staleness state of the target."""
            info = self.target.status()
            info["listen_port"] = self.listen_port
            return info

        @self.app.get("/internal/metrics")
        def internal_metrics():
            """The proxy's own metrics for this target."""
            return Response(
                content=self.target.self_metrics.exposition(),
                media_type=CONTENT_TYPE_LATEST
            )


def build_target(target_config: TargetConfig, config: Config) -> TargetAPI:
    """Create an isolated target and its app for one port pair."""
    target = ScrapeTarget(
        target_config.upstream_port,
        staleness=config.staleness,
        upstream=config.upstream
    )
    return TargetAPI(target, target_config.listen_port)


class ListenerGroup:
    """Runs one uvicorn server per target, started and stopped together."""

    def __init__(self, config: Config):
        self.config = config
        self.apis: List[TargetAPI] = [build_target(t, config) for t in config.targets]
        self.servers: List[uvicorn.Server] = []
        self.threads: List[threading.Thread] = []

    def start(self, timeout: float = 10.0):
        """
        Start all listeners in background threads.

        Raises:
            ListenerError: when any listener fails to come up; the others are stopped
        """
        for api in self.apis:
            server = uvicorn.Server(uvicorn.Config(
                api.app,
                host=self.config.server.bind_address,
                port=api.listen_port,
                log_level=self.config.global_.log_level.lower()
            ))
            # Signals are handled by the main thread, uvicorn only installs
            # its handlers there.
            thread = threading.Thread(
                target=server.run,
                name=f"listener-{api.listen_port}",
                daemon=True
            )
            thread.start()

            self.servers.append(server)
            self.threads.append(thread)

        failed = self._wait_started(timeout)
        if failed:
            self.stop()
            raise ListenerError(f"Failed to listen on port(s) {failed}")

        for api in self.apis:
            logger.info(
                f"Listening on {self.config.server.bind_address}:{api.listen_port}/metrics "
                f"for {api.target.url}"
            )

    def _wait_started(self, timeout: float) -> List[int]:
        """Wait for every server to bind, returning the listen ports that did not."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            if all(server.started for server in self.servers):
                return []
            # A listener that failed to bind exits its thread
            if any(not thread.is_alive() for thread in self.threads):
                break
            time.sleep(0.05)

        return [
            api.listen_port
            for api, server in zip(self.apis, self.servers)
            if not server.started
        ]

    def stop(self, timeout: float = 5.0):
        """Ask every listener to exit and wait for them."""
        logger.info("Stopping listeners")
        for server in self.servers:
            server.should_exit = True

        for thread in self.threads:
            thread.join(timeout=timeout)
