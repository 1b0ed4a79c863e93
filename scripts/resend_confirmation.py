"""
구독 확인 메일 재발송 스크립트

확인 메일 발송에 실패한 가입자에게 새 토큰으로 다시 발송한다.

사용법:
    python scripts/resend_confirmation.py --email user@example.com
"""

import argparse
import sys
from pathlib import Path

# 프로젝트 루트를 Python path에 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

import logging
logging.basicConfig(level=logging.INFO, format="%(message)s")

from src.config import get_settings
from src.errors import ServiceError
from src.web.dependencies import build_container


def main():
    parser = argparse.ArgumentParser(description="구독 확인 메일 재발송")
    parser.add_argument("--email", required=True, help="구독자 이메일 주소")

    args = parser.parse_args()

    container = build_container(get_settings())
    try:
        result = container.subscriptions.resend_confirmation(args.email)
    except ServiceError as e:
        print(f"✗ 재발송 실패: {e.message}")
        sys.exit(1)
    finally:
        container.close()

    if result.confirmation_sent:
        print(f"✓ 확인 메일이 {args.email}로 발송되었습니다.")
    else:
        print("✗ 확인 메일 발송에 실패했습니다. 잠시 후 다시 시도하세요.")
        sys.exit(1)


if __name__ == "__main__":
    main()
