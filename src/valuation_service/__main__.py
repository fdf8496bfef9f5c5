"""Run the valuation API: ``python -m valuation_service``."""
from __future__ import annotations

import uvicorn

from valuation_service.settings import ServiceSettings


def main() -> None:
    settings = ServiceSettings()
    uvicorn.run(
        "valuation_service.api:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
