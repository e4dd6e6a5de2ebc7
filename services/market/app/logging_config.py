"""
Market Service - ログ設定

全モジュール共通のフォーマットで stdout に出力する (Docker 互換)。
各モジュールは logging.getLogger(__name__) でロガーを取得する。
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # SQL のエコーはノイズになるので抑制
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
