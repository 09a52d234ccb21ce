import os
import sys
import tempfile

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Must be set before tapechart_service.database is imported
_db_dir = tempfile.mkdtemp(prefix="tapechart-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'tapechart.db')}"
os.environ.pop("REDIS_URL", None)
os.environ.setdefault("JWT_SECRET_KEY", "test-tape-chart-key")
