from recruit_grid.repositories.client_users import (
    FilesystemClientUsersRepository,
    InMemoryClientUsersRepository,
    PostgresClientUsersRepository,
)
from recruit_grid.repositories.clients import (
    FilesystemClientsRepository,
    InMemoryClientsRepository,
    PostgresClientsRepository,
)
from recruit_grid.repositories.positions import (
    FilesystemPositionsRepository,
    InMemoryPositionsRepository,
    PostgresPositionsRepository,
)

__all__ = [
    "FilesystemClientUsersRepository",
    "InMemoryClientUsersRepository",
    "PostgresClientUsersRepository",
    "FilesystemClientsRepository",
    "InMemoryClientsRepository",
    "PostgresClientsRepository",
    "FilesystemPositionsRepository",
    "InMemoryPositionsRepository",
    "PostgresPositionsRepository",
]
