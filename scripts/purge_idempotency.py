"""
만료된 멱등성 레코드 정리 스크립트

사용법:
    python scripts/purge_idempotency.py
    python scripts/purge_idempotency.py --ttl-hours 48
"""

import argparse
import sys
from datetime import timedelta
from pathlib import Path

# 프로젝트 루트를 Python path에 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

import logging
logging.basicConfig(level=logging.INFO, format="%(message)s")

from src.config import get_settings
from src.database import Database
from src.idempotency import IdempotencyLedger


def main():
    parser = argparse.ArgumentParser(description="만료된 멱등성 레코드 정리")
    parser.add_argument(
        "--ttl-hours",
        type=int,
        help="보존 기간 (시간, 기본값: IDEMPOTENCY_TTL_HOURS)",
    )

    args = parser.parse_args()

    settings = get_settings()
    ttl_hours = args.ttl_hours or settings.idempotency_ttl_hours

    database = Database(settings.database_url)
    database.create_all()
    ledger = IdempotencyLedger(retention=timedelta(hours=ttl_hours))

    try:
        with database.session() as session:
            deleted = ledger.purge_expired(session)
    finally:
        database.dispose()

    print(f"보존 기간 {ttl_hours}시간 초과 레코드 {deleted}건 삭제")


if __name__ == "__main__":
    main()
