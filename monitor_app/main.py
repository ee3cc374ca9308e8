"""
Monitor application main module.
Loads the YAML settings, creates the node gateway, the prober, the elector,
the switchover orchestrator and the monitor core, and starts the dispatcher
that refreshes the topology snapshot in the background.
Provides the objects via the FastAPI app.state so endpoints can use them.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from config.config_loader import ConfigLoader, MonitorSettings
from connection.engine_factory import EngineFactory
from connection.gateway import GatewayError, INodeGateway
from connection.sqlalchemy_gateway import SQLAlchemyNodeGateway
from monitoring.dispatcher import MonitorDispatcher
from monitoring.galera_check import GaleraHealthCheck
from monitoring.health_alerts import HealthAlertLogger
from monitoring.health_checker import ReplicationHealthChecker
from monitoring.monitor import ReplicationMonitor
from monitoring.prober import TopologyProber
from monitoring.replica_check import ReplicaHealthCheck
from replication.command_log import SwitchoverJournal
from replication.elector import CandidateElector
from replication.switchover import SwitchoverOrchestrator, SwitchoverSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "config", "monitor_config.yaml"
)


def init_system_components(settings: MonitorSettings, gateway: INodeGateway = None):
    """
    Build every component from the settings. A gateway can be passed in
    (tests, dry runs); by default nodes are reached through SQLAlchemy.
    Return a dict with created objects.
    """
    engine_factory = None
    if gateway is None:
        engine_factory = EngineFactory(settings.credentials, socket=settings.socket)
        gateway = SQLAlchemyNodeGateway(engine_factory)

    prober = TopologyProber(
        gateway,
        discovery=settings.discovery,
        replicas=settings.replicas,
        replica_port=settings.replica_port,
    )
    elector = CandidateElector(gateway, tie_break=settings.tie_break)
    journal = SwitchoverJournal(settings.journal_path)
    orchestrator = SwitchoverOrchestrator(
        gateway,
        elector,
        SwitchoverSettings(
            replication_credentials=settings.replication_credentials,
            long_write_threshold=settings.long_write_threshold,
            gtid_wait_timeout=settings.gtid_wait_timeout,
            demote_old_primary=settings.demote_old_primary,
        ),
        journal=journal,
    )

    health_checker = ReplicationHealthChecker()
    alerts = HealthAlertLogger()
    health_checker.add_observer(alerts)

    monitor = ReplicationMonitor(settings.primary, prober, orchestrator, health_checker)

    return {
        "settings": settings,
        "engine_factory": engine_factory,
        "gateway": gateway,
        "prober": prober,
        "elector": elector,
        "journal": journal,
        "orchestrator": orchestrator,
        "health_checker": health_checker,
        "alerts": alerts,
        "monitor": monitor,
        "dispatcher": MonitorDispatcher(monitor, settings.refresh_interval),
        "replica_check": ReplicaHealthCheck(gateway, max_delay=settings.max_delay),
        "galera_check": GaleraHealthCheck(
            gateway,
            available_when_donor=settings.galera.available_when_donor,
            disable_when_read_only=settings.galera.disable_when_read_only,
        ),
    }


def create_app(settings: MonitorSettings = None, gateway: INodeGateway = None) -> FastAPI:
    if settings is None:
        settings = ConfigLoader(os.environ.get("MONITOR_CONFIG", DEFAULT_CONFIG_PATH)).load_settings()

    components = init_system_components(settings, gateway)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # periodic refresh runs for as long as the server does
        await app.state.dispatcher.start()
        logger.info("[Startup] Monitoring primary %s", settings.primary)
        try:
            yield
        finally:
            await app.state.dispatcher.stop()
            if app.state.engine_factory is not None:
                app.state.engine_factory.dispose()
            logger.info("[Shutdown] Monitor stopped.")

    app = FastAPI(title="Replication Monitor", lifespan=lifespan)

    # store components on app.state so routers/endpoints can access them
    for name, component in components.items():
        setattr(app.state, name, component)

    # include API router
    from monitor_app.api_endpoints import router as api_router
    app.include_router(api_router)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request, exc):
        return JSONResponse(
            status_code=503,
            content={"detail": f"Node {exc.address} unavailable: {exc.message}"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    print("Starting monitor components in standalone mode (no HTTP server).")
    _ = create_app()
    print("Components created. Use `uvicorn monitor_app.main:app` to run the HTTP server.")
