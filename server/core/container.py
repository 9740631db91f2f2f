"""Dependency injection container for the event pipeline."""

from dependency_injector import containers, providers

from core.config import Settings
from services.telemetry import (
    DefaultGraphGenerator,
    EventDispatcher,
    InternalHooks,
    NullExecutionStatusStore,
    NullRoleLookup,
    create_analytics_client,
    create_audit_sink,
)


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Sinks (HTTP analytics only when diagnostics are enabled with an endpoint)
    analytics_client = providers.Singleton(
        create_analytics_client,
        settings=settings,
    )

    audit_sink = providers.Singleton(
        create_audit_sink,
        enabled=settings.provided.audit_enabled,
        logger_name=settings.provided.audit_logger_name,
    )

    # Collaborators
    graph_generator = providers.Singleton(
        DefaultGraphGenerator,
    )

    role_lookup = providers.Singleton(
        NullRoleLookup,
    )

    status_store = providers.Singleton(
        NullExecutionStatusStore,
    )

    # Node type definitions, e.g. {"n8n-nodes-base.webhook": {"version": 2, "webhooks": True}}
    node_types = providers.Object({})

    dispatcher = providers.Singleton(
        EventDispatcher,
    )

    internal_hooks = providers.Singleton(
        InternalHooks,
        analytics=analytics_client,
        audit=audit_sink,
        graph_generator=graph_generator,
        role_lookup=role_lookup,
        status_store=status_store,
        settings=settings,
        node_types=node_types,
        dispatcher=dispatcher,
    )


# Global container instance
container = Container()
