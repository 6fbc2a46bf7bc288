import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "ua-proxy")
PROXY_HOST = os.getenv("PROXY_HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "7891"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()

DESKTOP_UA = os.getenv(
    "DESKTOP_UA",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

PROXY_TIMEOUT = float(os.getenv("PROXY_TIMEOUT", "300"))  # 5 minutes default
WS_CONNECT_TIMEOUT = float(os.getenv("WS_CONNECT_TIMEOUT", "30"))
WS_READ_BUFFER = int(os.getenv("WS_READ_BUFFER", "65536"))

# Initial value of the operator toggle; the config endpoint changes it at runtime
PROCESS_LINKS = os.getenv("PROCESS_LINKS", "true").lower() == "true"

PRELOAD_PATH = "/__proxy_preload.js"
CONFIG_API_PATH = "/__proxy_api/config"
METRICS_PATH = "/__proxy_api/metrics"

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
