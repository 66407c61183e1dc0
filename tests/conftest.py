import os

# Keep the test database and log file away from the development ones.
os.environ.setdefault("DATABASE_URL", "sqlite:///./data/test-adgrouper.db")
os.environ.setdefault("APP_LOG_DIR", "logs")
os.environ.setdefault("APP_LOG_FILENAME", "test-run.log")
os.environ.setdefault("APP_SECRET_KEY", "test-secret-key")
