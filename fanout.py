"""Fan-out orchestrator: probe one URL from every configured region concurrently."""
import time
import asyncio
import logging
import concurrent.futures
from typing import Iterable, List, Optional

from errors import AllRegionsFailed, ProbeTimeout
from models import ProbeOptions, RegionFailure, RegionOutcome
from probe import ProbeClient

logger = logging.getLogger("geoping.fanout")

class FanOutOrchestrator:
    """Runs one probe per region on a worker pool and settles every outcome.

    A region's failure never discards its siblings: the join waits for all
    probes (bounded by `deadline` seconds) and tags each region as a check or
    a failure. Probes still running at the deadline are recorded as
    ProbeTimeout for their region only.
    """

    def __init__(self, probe_client: ProbeClient, regions: Iterable[str],
                 deadline: float = 45.0, max_workers: int = 32):
        self.probe_client = probe_client
        self.regions = list(regions)
        self.deadline = deadline
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(max_workers, len(self.regions), 1),
            thread_name_prefix="probe-worker"
        )

    async def probe_all_regions(self, url: str, options: Optional[ProbeOptions] = None) -> List[RegionOutcome]:
        """Probe `url` from every region; one outcome per region in configured order."""
        if not url:
            raise ValueError("url must not be empty")

        loop = asyncio.get_running_loop()
        start_time = time.time()

        futures = {
            region: loop.run_in_executor(self._executor, self.probe_client.probe, url, region, options)
            for region in self.regions
        }
        if not futures:
            return []

        done, pending = await asyncio.wait(futures.values(), timeout=self.deadline)
        for future in pending:
            future.cancel()

        outcomes = []
        for region, future in futures.items():
            if future in pending:
                error = ProbeTimeout(region, self.deadline)
            else:
                error = future.exception()
            if error is None:
                outcomes.append(RegionOutcome(region=region, check=future.result()))
            else:
                logger.warning(f"Region {region} failed for {url}: {error}")
                outcomes.append(RegionOutcome(
                    region=region,
                    failure=RegionFailure.from_exception(region, error),
                    error=error
                ))

        succeeded = sum(1 for outcome in outcomes if outcome.ok)
        logger.info(
            f"Fan-out for {url}: {succeeded}/{len(outcomes)} regions succeeded "
            f"in {time.time() - start_time:.2f}s"
        )
        return outcomes

    async def probe_all_regions_or_raise(self, url: str, options: Optional[ProbeOptions] = None) -> List[RegionOutcome]:
        """Like probe_all_regions, but raises AllRegionsFailed when no region succeeded."""
        outcomes = await self.probe_all_regions(url, options)
        if not any(outcome.ok for outcome in outcomes):
            raise AllRegionsFailed([outcome.failure for outcome in outcomes])
        return outcomes

    def shutdown(self):
        self._executor.shutdown(wait=False, cancel_futures=True)
