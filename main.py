"""Run the ledger HTTP service."""

import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# Load .env before reading any LEDGER_* / VAULT_* settings
load_dotenv(Path(__file__).parent / ".env")

from api.app import create_app
from core.config import LedgerConfig

config = LedgerConfig.from_env()

logging.basicConfig(
    level=config.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(config)

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.api_host,
        port=config.api_port,
        log_level=config.log_level.lower(),
    )
