"""
Market Service - 設定

他のサービスと同じく環境変数から読み込む。
"""

import os

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./marketplace.db")
REDIS_URL = os.environ.get("REDIS_URL")
EVENTS_CHANNEL = os.environ.get("MARKET_EVENTS_CHANNEL", "market_events")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
