import os
from dotenv import load_dotenv

# Загрузка .env
load_dotenv()

# База данных
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///mlm.db")
SQL_ECHO = os.getenv("SQL_ECHO", "0") in ("1", "true", "True")
# Not applied to SQLite, which only knows SERIALIZABLE
DB_ISOLATION_LEVEL = os.getenv("DB_ISOLATION_LEVEL", "READ COMMITTED")
# Seconds a SQLite connection waits for another writer's lock
SQLITE_BUSY_TIMEOUT = float(os.getenv("SQLITE_BUSY_TIMEOUT", "30"))

# Referral tree traversal
MAX_CHAIN_DEPTH = int(os.getenv("MAX_CHAIN_DEPTH", "20"))
MAX_DOWNLINE_DEPTH = int(os.getenv("MAX_DOWNLINE_DEPTH", "10"))

# Package approval
APPROVAL_TIMEOUT_SECONDS = int(os.getenv("APPROVAL_TIMEOUT_SECONDS", "90"))
APPROVAL_MAX_RETRIES = int(os.getenv("APPROVAL_MAX_RETRIES", "3"))
DEFAULT_PACKAGE_VALIDITY_DAYS = int(os.getenv("DEFAULT_PACKAGE_VALIDITY_DAYS", "365"))

# Lowest rank tier that can receive indirect commission
INDIRECT_FLOOR_RANK = os.getenv("INDIRECT_FLOOR_RANK", "Manager")

# Логирование
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
