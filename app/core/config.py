import os

from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./confeitaria.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

AUTO_CREATE_SCHEMA = os.getenv("AUTO_CREATE_SCHEMA", "1" if IS_DEV else "0").strip().lower() in {
    "1",
    "true",
    "yes",
    "on",
}

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

# Painel administrativo: vazio desativa a checagem (apenas dev)
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "").strip()

# Pedidos
ORDER_NUMBER_FLOOR = int(os.getenv("ORDER_NUMBER_FLOOR", "1000"))
ORDER_CREATE_MAX_ATTEMPTS = int(os.getenv("ORDER_CREATE_MAX_ATTEMPTS", "5"))
DEFAULT_COUNTRY_CODE = os.getenv("DEFAULT_COUNTRY_CODE", "55").strip()

# Acompanhamento de pedidos no navegador
ACTIVE_ORDER_POLL_SECONDS = float(os.getenv("ACTIVE_ORDER_POLL_SECONDS", "30"))
ORDER_API_BASE_URL = os.getenv("ORDER_API_BASE_URL", "http://localhost:8000").rstrip("/")
ORDER_API_TIMEOUT_SECONDS = float(os.getenv("ORDER_API_TIMEOUT_SECONDS", "10"))
