"""
Newsletter 메인 실행 파일

뉴스레터 구독 및 발송 서비스
"""

import logging
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# 프로젝트 루트를 Python path에 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import Settings, get_settings
from src.web.app import create_app
from src.web.dependencies import build_container

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """로깅 설정 (시작 시 한 번)"""
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / "newsletter.log", encoding="utf-8"),
        ],
    )


def main():
    """메인 함수"""
    import argparse

    parser = argparse.ArgumentParser(description="Newsletter - 구독 및 발송 서비스")
    parser.add_argument("--host", help="바인딩 주소 (기본값: APP_HOST)")
    parser.add_argument("--port", type=int, help="포트 (기본값: APP_PORT)")
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="테이블만 생성하고 종료",
    )

    args = parser.parse_args()

    # 환경 변수 로드
    load_dotenv()

    settings = get_settings()
    configure_logging(settings)

    logger.info("서비스 구성 요소 초기화...")
    container = build_container(settings)

    if args.init_db:
        logger.info("데이터베이스 초기화만 실행")
        container.close()
        return

    app = create_app(container)

    host = args.host or settings.app_host
    port = args.port or settings.app_port
    logger.info(f"서버 시작: http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
