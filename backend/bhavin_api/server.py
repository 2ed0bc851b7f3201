"""
Bhavin API — Process Entry Point
=================================

What:  Builds the pipeline and hands it to uvicorn.
How:   `bhavin-api` console script, or `python -m bhavin_api.server`.
       Equivalent: `uvicorn bhavin_api.main:create_app --factory`.
"""

import uvicorn

from bhavin_api.config import settings
from bhavin_api.main import create_app


def main() -> None:
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=False,
    )


if __name__ == "__main__":
    main()
