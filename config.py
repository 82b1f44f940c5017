# config.py

import os

# -- ENVIRONMENT & STORAGE CONFIGURATION --

# 저장 방식 선택 ('GCS' 또는 'LOCAL')
STATE_STORAGE_METHOD = os.environ.get("STATE_STORAGE_METHOD", "LOCAL")
# GCP storage Settings
GCP_PROJECT_ID = os.environ.get("GCP_PROJECT_ID")
GCS_BUCKET_NAME = os.environ.get("GCS_BUCKET_NAME")

# local storage Settings
LOCAL_DATA_DIR = os.environ.get(
    "LOCAL_DATA_DIR", os.path.join(os.path.dirname(__file__), "data")
)

ANALYSIS_DIR_NAME = "analysis"
HISTORY_DIR_NAME = "history"
CANDLES_DIR_NAME = "candles"
BACKTEST_DIR_NAME = "backtest"

# -- EXTERNAL API & NOTIFICATION CONFIGURATION --

BINANCE_API_BASE_URL = os.environ.get("BINANCE_API_BASE_URL", "https://fapi.binance.com")

# Telegram
ENABLE_TELEGRAM = os.environ.get("ENABLE_TELEGRAM", "false").lower() == "true"
TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID", "")

# -- APPLICATION SETTINGS --

APP_LOGGER_NAME = "ReversalMonitor"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# API 호출 제한 및 재시도
API_CALLS_PER_SECOND = 10
API_MAX_RETRIES = 3
API_RETRY_DELAY_SECONDS = 1.0
HISTORICAL_BATCH_SIZE = 10          # 과거 등락률 계산 시 한 번에 처리할 심볼 수
HISTORICAL_BATCH_DELAY_SECONDS = 0.5

# 캔들 데이터
ANALYSIS_CANDLE_LIMIT = 250         # MA200 계산이 가능하도록 200개 이상 확보
MIN_CANDLES_FOR_ANALYSIS = 30
TIMEFRAMES = ["15m", "1h", "4h", "1d"]
CANDLE_CACHE_RETENTION_DAYS = 7

# 모니터링 루프
DEFAULT_GAINERS_LIMIT = 20
DEFAULT_INTERVAL = "1h"
MONITOR_INTERVAL_SECONDS = 60 * 60
MONITOR_RETRY_SECONDS = 5 * 60


# -- ANALYSIS & ALERTING POLICY --

# --- 1. Signal Scoring ---
RSI_OVERBOUGHT = 70
BB_UPPER_RATIO_THRESHOLD = 0.8
VOLUME_SPIKE_RATIO = 1.5
VOLUME_SPIKE_MAX_PRICE_GAIN = 1.01  # 거래량 급증 시 허용되는 최대 가격 상승 (1%)
MULTI_SIGNAL_BOOST = 1.2            # 2개 이상 신호 동시 발생 시 확률 가중치

# --- 2. Tracking State Machine ---
EXHAUSTION_PROBABILITY_THRESHOLD = 70   # 상승 피로 판단 최소 반전 확률
DOWNTREND_CONFIRM_DROP_PCT = 5.0        # 고점 대비 하락 확정 기준 (%)
TRACKING_RETENTION_DAYS = 7             # 업데이트 없이 추적을 유지하는 기간

# --- 3. Backtest ---
BACKTEST_DEFAULT_LOOKBACK_DAYS = 30
BACKTEST_DEFAULT_SPAN_DAYS = 7
BACKTEST_GAINERS_LIMIT = 20
BACKTEST_DAY_DELAY_SECONDS = 1.0
BACKTEST_FALLBACK_EXHAUSTION_PROBABILITY = 70
BACKTEST_FALLBACK_CONFIRMED_PROBABILITY = 90
EVALUATION_MIN_PROBABILITY = 70
EVALUATION_SUCCESS_THRESHOLD_PCT = -5.0  # 이후 5% 이상 하락 시 예측 성공
MOCK_GAINER_SYMBOLS = [
    "BTCUSDT", "ETHUSDT", "BNBUSDT", "ADAUSDT", "DOGEUSDT",
    "XRPUSDT", "DOTUSDT", "UNIUSDT", "LINKUSDT", "LTCUSDT",
    "SOLUSDT", "MATICUSDT", "AXSUSDT", "ATOMUSDT", "AVAXUSDT",
    "FILUSDT", "ICPUSDT", "VETUSDT", "TRXUSDT", "ETCUSDT",
]
MOCK_GAINERS_MIN_COUNT = 10
