"""
발행자 계정 생성 스크립트

사용법:
    python scripts/add_publisher.py --username editor
"""

import argparse
import getpass
import sys
from pathlib import Path

# 프로젝트 루트를 Python path에 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

import logging
logging.basicConfig(level=logging.INFO, format="%(message)s")

from src.auth import CredentialValidator
from src.config import get_settings
from src.database import Database
from src.errors import ServiceError


def main():
    parser = argparse.ArgumentParser(description="뉴스레터 발행자 계정 생성")
    parser.add_argument("--username", required=True, help="발행자 사용자명")
    parser.add_argument("--password", help="비밀번호 (생략 시 입력 프롬프트)")

    args = parser.parse_args()

    password = args.password or getpass.getpass("비밀번호: ")
    if not password:
        print("오류: 비밀번호가 필요합니다.")
        sys.exit(1)

    settings = get_settings()
    database = Database(settings.database_url)
    database.create_all()

    print("\n" + "=" * 50)
    print("발행자 계정 생성")
    print("=" * 50)

    try:
        user_id = CredentialValidator(database).create_publisher(args.username, password)
    except ServiceError as e:
        print(f"\n✗ 생성 실패: {e.message}")
        sys.exit(1)
    finally:
        database.dispose()

    print(f"\n✓ 계정 생성 완료")
    print(f"  - 사용자명: {args.username}")
    print(f"  - user_id: {user_id}")
    print("\n" + "=" * 50)


if __name__ == "__main__":
    main()
