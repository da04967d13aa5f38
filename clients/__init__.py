# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    VaultError,
    get_database_url,
    reset_vault_client,
)
from clients.postgres_client import PostgresClient, Transaction
