import logging
import os
from pathlib import Path
from typing import Optional


def configure_logging(level: Optional[str] = None, file_path: Optional[str] = None) -> None:
    level = level or os.getenv("LOAN_ENGINE_LOG_LEVEL", "INFO")
    file_path = file_path or os.getenv("LOAN_ENGINE_LOG_FILE")
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,  # the CLI and the web app may both configure logging
    )

    # SQL echo is only wanted when explicitly asked for
    logging.getLogger("sqlalchemy.engine").setLevel(os.getenv("SQL_LOG_LEVEL", "WARNING"))
