"""
Environment configuration and logging setup
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterable, Optional

from dotenv import load_dotenv


@dataclass
class OfferConfig:
    """Settings read from the environment (.env supported)"""
    chain_id: int
    factory_address: str
    template_address: str
    db_path: str = 'settlements.db'
    rpc_url: Optional[str] = None
    private_key: Optional[str] = None
    gas_limit: int = 1_500_000
    telegram_notifications_enabled: bool = False
    telegram_bot_token: Optional[str] = None
    telegram_channel_id: Optional[str] = None


LIBRARY_VARS = ['CHAIN_ID', 'OFFER_FACTORY_ADDRESS', 'OFFER_TEMPLATE_ADDRESS']
CHAIN_VARS = ['PRIVATE_KEY', 'ALCHEMY_RPC_URL']


def load_config(require_chain: bool = False) -> OfferConfig:
    """Load configuration from environment"""
    load_dotenv()

    required_vars: Iterable[str] = LIBRARY_VARS + (CHAIN_VARS if require_chain else [])
    missing = [var for var in required_vars if not os.getenv(var)]
    if missing:
        raise ValueError(f"Missing required environment variables: {missing}")

    return OfferConfig(
        chain_id=int(os.getenv('CHAIN_ID')),
        factory_address=os.getenv('OFFER_FACTORY_ADDRESS'),
        template_address=os.getenv('OFFER_TEMPLATE_ADDRESS'),
        db_path=os.getenv('LEDGER_DB_PATH', 'settlements.db'),
        rpc_url=os.getenv('ALCHEMY_RPC_URL'),
        private_key=os.getenv('PRIVATE_KEY'),
        gas_limit=int(os.getenv('GAS_LIMIT', '1500000')),
        telegram_notifications_enabled=os.getenv('TELEGRAM_NOTIFICATIONS_ENABLED', 'false').lower() == 'true',
        telegram_bot_token=os.getenv('TELEGRAM_BOT_TOKEN'),
        telegram_channel_id=os.getenv('TELEGRAM_CHANNEL_ID'),
    )


def setup_logging(name: str = 'privateoffer', log_dir: str = 'logs') -> logging.Logger:
    """Setup logging"""
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    file_handler = logging.FileHandler(os.path.join(log_dir, f'{name}.log'), encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    if os.getenv('DEBUG_SETTLEMENT', 'false').lower() == 'true':
        console_handler.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s'
    )
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    return logger
