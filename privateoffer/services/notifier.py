"""
Telegram notifications for settled private offers
"""

import logging
import os
from typing import Optional

import requests

from privateoffer.models import Event


class TelegramNotifier:
    """Posts NewClone events to a Telegram channel.

    Subscribe an instance to a StateStore; it receives events after commit,
    so only settled offers are announced.
    """

    def __init__(self, bot_token: Optional[str] = None, channel_id: Optional[str] = None,
                 enabled: Optional[bool] = None, explorer_url: str = "https://etherscan.io"):
        self.bot_token = bot_token or os.getenv('TELEGRAM_BOT_TOKEN')
        self.channel_id = channel_id or os.getenv('TELEGRAM_CHANNEL_ID')
        if enabled is None:
            enabled = os.getenv('TELEGRAM_NOTIFICATIONS_ENABLED', 'false').lower() == 'true'
        self.enabled = enabled
        self.explorer_url = explorer_url.rstrip('/')
        self.logger = logging.getLogger('privateoffer')

    def __call__(self, event: Event) -> None:
        if event.name == 'NewClone':
            self.send_clone_notification(event.args['clone'])

    def format_message(self, clone_address: str) -> str:
        return f"""<b>PRIVATE OFFER SETTLED</b>

📍 <code>{clone_address}</code>
🔗 <a href="{self.explorer_url}/address/{clone_address}">Explorer</a>"""

    def send_clone_notification(self, clone_address: str) -> bool:
        """Send the notification; failures are logged, never raised"""
        if not self.enabled:
            self.logger.info(f"Telegram notifications disabled (skipping {clone_address})")
            return False

        if not self.bot_token or not self.channel_id:
            self.logger.warning("TELEGRAM_BOT_TOKEN or TELEGRAM_CHANNEL_ID not configured")
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        data = {
            'chat_id': self.channel_id,
            'text': self.format_message(clone_address),
            'parse_mode': 'HTML',
            'disable_web_page_preview': True
        }

        try:
            response = requests.post(url, json=data, timeout=10)
            if response.status_code == 200:
                result = response.json()
                if result.get('ok'):
                    self.logger.info(f"Telegram notification sent for {clone_address}")
                    return True
                error_msg = result.get('description', 'Unknown error')
                self.logger.error(f"Telegram API error: {error_msg}")
            else:
                self.logger.error(f"Telegram HTTP error: {response.status_code} - {response.text}")

        except requests.exceptions.Timeout:
            self.logger.error("Telegram notification timeout")
        except requests.exceptions.ConnectionError:
            self.logger.error("Failed to connect to Telegram API")

        return False
