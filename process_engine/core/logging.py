import logging
import json
from datetime import datetime, timezone

from process_engine.core.config import settings
from process_engine.core.context import get_current_activity_id, get_current_process_instance_id

class JSONContextFormatter(logging.Formatter):
    def format(self, record):
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
            "filename": record.filename,
            "process_instance_id": get_current_process_instance_id() or "-",
            "activity_id": get_current_activity_id() or "-",
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, ensure_ascii=False, default=str)

def setup_logging(level: str | None = None) -> logging.Logger:
    handler = logging.StreamHandler()
    if settings.LOG_JSON:
        handler.setFormatter(JSONContextFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    root_logger = logging.getLogger("process_engine")
    root_logger.setLevel(level or settings.LOG_LEVEL)
    # Re-running setup must not stack handlers
    root_logger.handlers = [handler]
    return root_logger
