import uvicorn

from degen_frame.check_upstreams import check_upstreams
from degen_frame.config import settings
from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="server")


def maybe_check_upstreams() -> None:
    """
    Optionally run the upstream preflight. Controlled by:
    - FRAME_SKIP_UPSTREAM_CHECK=true to skip entirely (useful in dev/tests)
    - FRAME_REQUIRED_FIELDS to decide which upstream failures are fatal.
    """
    if settings.skip_upstream_check:
        logger.info("Skipping upstream preflight (FRAME_SKIP_UPSTREAM_CHECK=true)")
        return

    try:
        check_upstreams(settings)
    except SystemExit:
        logger.error("Upstream preflight failed; set FRAME_SKIP_UPSTREAM_CHECK=true to bypass during dev/tests.")
        raise


if __name__ == "__main__":
    import os

    setup_logging(level=settings.log_level)
    maybe_check_upstreams()

    uvicorn.run(
        "degen_frame.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=False,
    )
