from protean.domain import Domain
from sqlalchemy.pool import StaticPool

from backoffice.config import Settings

_IN_MEMORY_SQLITE = ("sqlite://", "sqlite:///:memory:")


def database_config(settings: Settings) -> dict:
    """Protean ``databases.default`` entry for the configured repository backend."""
    if settings.repository != "sql":
        return {"provider": "memory"}

    uri = settings.database_uri
    if uri.startswith("sqlite"):
        config = {
            "provider": "sqlite",
            "database_uri": uri,
            "connect_args": {"timeout": settings.repository_timeout, "check_same_thread": False},
        }
        if uri in _IN_MEMORY_SQLITE:
            # One shared connection so every thread sees the same database
            config["poolclass"] = StaticPool
        return config

    return {
        "provider": "postgresql",
        "database_uri": uri,
        "pool_timeout": settings.repository_timeout,
    }


def configure_database(domain: Domain, settings: Settings) -> None:
    """Point the domain's default provider at the configured backend and reconnect."""
    domain.config["databases"]["default"] = database_config(settings)
    with domain.domain_context():
        domain.providers._initialize()


def setup_db(domain: Domain):
    """Setup database schema"""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in ("sqlite", "postgresql"):
                # Accessing _dao registers each model's table with the provider's metadata
                for _, aggregate_record in domain.registry.aggregates.items():
                    if aggregate_record.cls.meta_.provider == provider.name:
                        domain.repository_for(aggregate_record.cls)._dao  # noqa: B018

                for _, entity_record in domain.registry.entities.items():
                    if entity_record.cls.meta_.provider == provider.name:
                        domain.repository_for(entity_record.cls)._dao  # noqa: B018

                provider._metadata.create_all(provider._engine)


def drop_db(domain: Domain):
    """Drop database schema"""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in ("sqlite", "postgresql"):
                provider._metadata.drop_all(provider._engine)
