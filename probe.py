"""Probe client: one region-scoped latency measurement against the probing service."""
import logging
from typing import Iterable, Optional

import requests

from errors import InvalidProbeResponse, ProbeRequestFailed
from models import Method, ProbeOptions, RegionCheck, parse_check_result

logger = logging.getLogger("geoping.probe")

class ProbeClient:
    """Issues single probe requests to the regional checker.

    Calls are blocking; the fan-out runs them on a thread pool. The client
    keeps no per-region state, so one instance serves every region.
    """

    def __init__(self, base_url: str, secret: str, timeout: float = 30.0,
                 session: Optional[requests.Session] = None, regions: Optional[Iterable[str]] = None):
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.timeout = timeout
        self._session = session or requests.Session()
        self.regions = list(regions) if regions is not None else None

    def _headers(self, region: str) -> dict:
        return {
            "Authorization": f"Basic {self.secret}",
            "Content-Type": "application/json",
            "fly-prefer-region": region,
            # never serve a probe from an intermediate cache
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }

    @staticmethod
    def build_payload(url: str, options: ProbeOptions) -> dict:
        payload = {"url": url, "method": options.method.value}

        headers = options.header_map()
        if headers:
            payload["headers"] = headers

        if options.body and options.method not in (Method.GET, Method.HEAD):
            payload["body"] = options.body
        elif options.body:
            logger.debug(f"Dropping request body for {options.method.value} probe of {url}")

        return payload

    def probe(self, url: str, region: str, options: Optional[ProbeOptions] = None) -> RegionCheck:
        """Measure `url` from `region` and return the validated, region-tagged result.

        Raises:
            ValueError: url is empty or region is not a configured region.
            ProbeRequestFailed: the probing service could not be reached or
                did not answer with JSON.
            InvalidProbeResponse: the JSON answer breaks the CheckResult contract.
        """
        if not url:
            raise ValueError("url must not be empty")
        if not region or (self.regions is not None and region not in self.regions):
            raise ValueError(f"unsupported region {region!r}, expected one of {self.regions}")

        options = options or ProbeOptions()
        endpoint = f"{self.base_url}/{region}"

        logger.debug(f"Probing {url} from {region} ({options.method.value})")

        try:
            response = self._session.post(
                endpoint,
                headers=self._headers(region),
                json=self.build_payload(url, options),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Probe request to {region} failed: {e}")
            raise ProbeRequestFailed(region, str(e)) from e

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning(f"Probe response from {region} is not JSON (HTTP {response.status_code})")
            raise ProbeRequestFailed(
                region, f"non-JSON response with HTTP {response.status_code}"
            ) from e

        result = parse_check_result(payload)
        if not result.success:
            logger.error(
                f"Invalid probe response from {region} for {url}: {result.error}; payload={payload!r}"
            )
            raise InvalidProbeResponse(region, payload, result.error)

        check = RegionCheck(region=region, **dict(result.data))
        logger.info(f"Probe {url} from {region}: HTTP {check.status} in {check.latency}ms")
        return check

    def close(self):
        self._session.close()
