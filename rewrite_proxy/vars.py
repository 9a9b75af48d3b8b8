import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "rewrite-proxy")

# Timeout handed to the outbound httpx client, in seconds
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "300"))

# Edge-supplied client metadata headers
CLIENT_IP_HEADER = os.environ.get("CLIENT_IP_HEADER", "cf-connecting-ip").lower()
REGION_HEADER = os.environ.get("REGION_HEADER", "cf-ipcountry").lower()

METRICS_PATH = os.environ.get("METRICS_PATH", "/metrics")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

# Per-route settings, re-read on every request by RouteConfig.from_env
ROUTE_ENV_VARS = {
    "proxy_host": "PROXY_HOSTNAME",
    "proxy_port": "PROXY_PORT",
    "proxy_protocol": "PROXY_PROTOCOL",
    "pathname_filter": "PATHNAME_REGEX",
    "user_agent_allow": "UA_ALLOW_REGEX",
    "user_agent_deny": "UA_DENY_REGEX",
    "ip_allow": "IP_ALLOW_REGEX",
    "ip_deny": "IP_DENY_REGEX",
    "region_allow": "REGION_ALLOW_REGEX",
    "region_deny": "REGION_DENY_REGEX",
    "fallback_redirect_url": "FALLBACK_REDIRECT_URL",
    "debug_mode": "DEBUG",
}
