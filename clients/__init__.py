# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    VaultError,
    get_database_url,
    get_valkey_url,
)
from clients.postgres_client import PostgresClient, get_postgres_client
from clients.valkey_client import ValkeyClient
from clients.email_client import (
    EmailConfig,
    EmailGatewayError,
    Mailer,
    ResendClient,
    WebhookMailClient,
)
