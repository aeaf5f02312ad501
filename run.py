import logging
import os
import threading
from typing import Optional

import requests
import uvicorn

logger = logging.getLogger("aniverse.run")

PING_INTERVAL_SECONDS = 10 * 60  # 10 minutes


def keep_alive(url: str, interval: float = PING_INTERVAL_SECONDS, stop: Optional[threading.Event] = None):
    """Ping `url` every `interval` seconds until `stop` is set, keeping a sleeping host awake."""
    stop = stop or threading.Event()
    while True:
        try:
            response = requests.get(url, timeout=10)
            logger.info("[KeepAlive] Pinged %s: status %s", url, response.status_code)
        except requests.RequestException as e:
            logger.warning("[KeepAlive] Failed to ping %s: %s", url, e)
        if stop.wait(interval):
            return


def main():
    logging.basicConfig(level=logging.INFO)
    env = os.getenv("ENV", "local").lower()
    port = int(os.getenv("PORT", "8000"))

    if env == "prod":
        url = os.getenv("KEEP_ALIVE_URL", f"http://localhost:{port}/api/health")
        threading.Thread(target=keep_alive, args=(url,), daemon=True).start()
        uvicorn.run("aniverse.main:app", host="0.0.0.0", port=port, reload=False)
    else:
        logger.info("Running in local mode, keep-alive disabled.")
        uvicorn.run("aniverse.main:app", host="localhost", port=port, reload=True)


if __name__ == "__main__":
    main()
