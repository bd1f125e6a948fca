"""Run the SIM scenario against a running API."""

import asyncio

from dotenv import load_dotenv

from workit.config import PROJECT_ROOT, resolve_api_url
from workit.logging_config import setup_logging

from .sim import Sim


async def _run() -> None:
    sim = Sim(api_url=resolve_api_url())
    await sim.start()
    await sim.wait()


if __name__ == "__main__":
    load_dotenv(PROJECT_ROOT / ".env")
    setup_logging(log_name="sim")
    asyncio.run(_run())
