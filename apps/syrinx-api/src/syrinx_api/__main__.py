"""Entry point for the syrinx-api service.

Runs a single worker: every voice is loaded in-process at startup and the
registry is shared by reference, not across processes.
"""

import uvicorn

from .config import settings


def main() -> None:
    uvicorn.run(
        "syrinx_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        workers=1,
    )


if __name__ == "__main__":
    main()
