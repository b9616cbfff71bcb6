import os
import tempfile
from pathlib import Path

# Isolated file DB for API tests and no background services or broker.
DB_PATH = Path(tempfile.gettempdir()) / "voltwatch_test_api.db"
if DB_PATH.exists():
    DB_PATH.unlink()

os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{DB_PATH}")
os.environ.setdefault("AUTO_CREATE_DB", "true")
os.environ.setdefault("ENABLE_MQTT_CONSUMER", "false")
os.environ.setdefault("ENABLE_RULE_ENGINE", "false")
os.environ.setdefault("VOLTWATCH_AUTH_DISABLED", "false")
os.environ.setdefault("HOME_ID", "home1")
os.environ.setdefault("RULE_TIMEZONE", "UTC")
