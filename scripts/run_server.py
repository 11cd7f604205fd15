from __future__ import annotations

import sys
from pathlib import Path

import uvicorn

sys.path.append(str(Path(__file__).resolve().parent.parent))

from appraisal.infrastructure.config import get_settings  # noqa: E402


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "appraisal.web.main:app",
        host=settings.app.host,
        port=settings.app.port,
        reload=settings.is_development(),
    )


if __name__ == "__main__":
    main()
