#main

import argparse
import asyncio
import logging
import sys

import aiohttp
import functions_framework

import config
from reversal.analysis import run_timeframe_analysis
from reversal.backtest.main import run_backtest
from reversal.monitor import run_monitor_cycle, run_monitor_loop

# --- 로거 설정 ---
logging.basicConfig(
    level=config.LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(config.APP_LOGGER_NAME)

USAGE = """사용법:
  python main.py [--mode=monitor] [--limit 20] [--interval 1h] [--once]
  python main.py --mode=backtest --start-date YYYY-MM-DD [--end-date YYYY-MM-DD] [--interval 1h]
  python main.py --mode=analyze --symbol BTCUSDT
"""


def create_gcs_client():
    """저장 방식이 GCS인 경우 GCS 클라이언트를 생성합니다. 로컬 모드이면 None을 반환합니다."""
    if config.STATE_STORAGE_METHOD != "GCS":
        logger.info("로컬 파일 저장 모드로 실행됩니다.")
        return None

    try:
        from google.cloud import storage
    except ImportError:
        logger.critical(
            "GCS 모드로 설정되었으나 'google-cloud-storage' 라이브러리가 설치되지 않았습니다."
        )
        logger.critical("pip install google-cloud-storage 명령어로 설치해주세요.")
        raise

    logger.info("GCS 저장 모드로 실행됩니다.")
    return storage.Client(project=config.GCP_PROJECT_ID)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="바이낸스 선물 등락률 상위 심볼의 상승 피로 및 하락 반전을 감시합니다."
    )
    parser.add_argument("--mode", default="monitor", help="monitor | backtest | analyze")
    parser.add_argument("--limit", type=int, default=config.DEFAULT_GAINERS_LIMIT)
    parser.add_argument("--interval", default=config.DEFAULT_INTERVAL)
    parser.add_argument("--start-date", dest="start_date")
    parser.add_argument("--end-date", dest="end_date")
    parser.add_argument("--symbol")
    parser.add_argument("--once", action="store_true", help="모니터링을 1회만 실행합니다.")
    return parser


async def _run_analyze(symbol: str, gcs_client):
    async with aiohttp.ClientSession() as session:
        await run_timeframe_analysis(session, symbol.upper(), gcs_client)


def run_cli(argv=None) -> int:
    """명령줄 인자에 따라 모드를 선택하여 실행하고 종료 코드를 반환합니다."""
    args = build_parser().parse_args(argv)

    if args.mode == "backtest" and not args.start_date:
        print("백테스트 모드에는 --start-date 가 필요합니다.\n")
        print(USAGE)
        return 1
    if args.mode == "analyze" and not args.symbol:
        print("분석 모드에는 --symbol 이 필요합니다.\n")
        print(USAGE)
        return 1
    if args.mode not in ("monitor", "backtest", "analyze"):
        print(f"알 수 없는 모드입니다: {args.mode}\n")
        print(USAGE)
        return 1

    gcs_client = create_gcs_client()

    if args.mode == "backtest":
        asyncio.run(
            run_backtest(args.start_date, args.end_date, args.interval, gcs_client)
        )
    elif args.mode == "analyze":
        asyncio.run(_run_analyze(args.symbol, gcs_client))
    else:
        logger.info(
            f"모니터링 시작: 상위 {args.limit}개 심볼, 시간 간격 {args.interval}"
            f"{' (1회 실행)' if args.once else ''}"
        )
        asyncio.run(
            run_monitor_loop(args.limit, args.interval, once=args.once, gcs_client=gcs_client)
        )
    return 0


async def run_check():
    """모니터링 파이프라인을 1회 실행합니다."""
    gcs_client = create_gcs_client()
    try:
        async with aiohttp.ClientSession() as session:
            await run_monitor_cycle(
                session, config.DEFAULT_GAINERS_LIMIT, config.DEFAULT_INTERVAL, gcs_client
            )
    except Exception as e:
        logger.critical(f"핵심 파이프라인 실행 중 예외 발생: {e}", exc_info=True)
        raise RuntimeError("Failed to execute the monitor pipeline") from e


@functions_framework.http
def main(request):
    """Cloud Scheduler 등 HTTP 트리거로 모니터링 사이클을 1회 실행합니다.

    Returns:
        (응답 메시지, HTTP 상태 코드)
    """
    logger.info("반전 모니터링 작업 시작 (Cloud Function).")
    try:
        asyncio.run(run_check())
    except Exception as e:
        logger.critical(f"작업 실행 중 심각한 오류 발생: {e}", exc_info=True)
        return ("Internal Server Error", 500)

    logger.info("반전 모니터링 작업 완료 (Cloud Function).")
    return ("OK", 200)


if __name__ == "__main__":
    try:
        sys.exit(run_cli())
    except KeyboardInterrupt:
        logger.info("사용자에 의해 모니터링이 중단되었습니다.")
