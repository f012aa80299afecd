from scanboard.repositories.analyses import (
    InMemoryAnalysesRepository,
    PostgresAnalysesRepository,
    create_analyses_repository_from_env,
)

__all__ = [
    "InMemoryAnalysesRepository",
    "PostgresAnalysesRepository",
    "create_analyses_repository_from_env",
]
