"""
FastAPI application for the ingress controller.

This module wires the cluster client, the ingress watcher, the
reconciliation loop and the routing table into one application.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from panacea import __version__
from panacea.config import ControllerSettings, get_logger
from panacea.core.middleware import AccessLogMiddleware
from panacea.gateway.dispatcher import proxy_router
from panacea.gateway.proxy import BackendResolver
from panacea.gateway.routing import RouteBuilder, RoutingTable
from panacea.services.cluster import ClusterClient, create_api_client
from panacea.services.reconciler import Reconciler
from panacea.services.watcher import ChangeSignal, IngressWatcher
from panacea.utils.helpers import DEFAULT_CLUSTER_DOMAIN

logger = get_logger(__name__)


def create_app(
    settings: ControllerSettings,
    table: Optional[RoutingTable] = None,
    reconciler: Optional[Reconciler] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Controller settings
        table: Routing table served by the dispatcher
        reconciler: Reconciler started and stopped with the application

    Returns:
        FastAPI application
    """
    if table is None:
        table = reconciler.table if reconciler is not None else RoutingTable()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        if reconciler is not None:
            await reconciler.start()
        logger.info("Controller ready", extra={"ingress_class": settings.ingress_class, "listen": settings.listen})

        yield

        # Cleanup
        if reconciler is not None:
            await reconciler.stop()

    app = FastAPI(
        title="Panacea Ingress Controller",
        description="Reverse proxy driven by Kubernetes Ingress resources",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None
    )
    app.state.settings = settings
    app.state.routing_table = table
    app.state.reconciler = reconciler

    if settings.access_log:
        app.add_middleware(AccessLogMiddleware)

    # Every path on every host goes through the dispatcher
    app.include_router(proxy_router)

    return app


def build_application(settings: ControllerSettings) -> FastAPI:
    """
    Build the application against a live cluster.

    Raises:
        kubernetes.config.ConfigException: If no cluster configuration is found
    """
    api_client = create_api_client(settings.kubeconfig)
    cluster = ClusterClient(
        api_client,
        namespace=settings.namespace,
        request_timeout=settings.cluster_query_timeout
    )

    signal = ChangeSignal()
    watcher = IngressWatcher(cluster, signal)
    builder = RouteBuilder(
        BackendResolver(cluster, DEFAULT_CLUSTER_DOMAIN),
        proxy_config=settings.proxy,
        empty_class_policy=settings.empty_class_policy
    )
    table = RoutingTable()

    reconciler = Reconciler(
        cluster,
        builder,
        table,
        signal,
        settings.ingress_class,
        watcher=watcher,
        resync_period=settings.resync_period,
        list_timeout=settings.cluster_query_timeout,
        build_timeout=settings.reconcile_timeout,
        cache_sync_timeout=settings.cache_sync_timeout,
        drain_seconds=settings.proxy.drain_seconds
    )

    logger.info(
        "Controller configured",
        extra={
            "ingress_class": settings.ingress_class,
            "namespace": settings.namespace or "<all>",
            "resync_period": settings.resync_period,
            "empty_class_policy": settings.empty_class_policy.value,
        }
    )
    return create_app(settings, table=table, reconciler=reconciler)
