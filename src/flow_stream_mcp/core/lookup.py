"""
Clients for the two external HTTP services next to the flow stream.

  history   GET /flows?limit=N, GET /flows/latest, GET /flows/search?field=value
  geoip     GET /geoip/<ip>

Every call is isolated. A timeout, connection error, bad status or bad
JSON is logged and turned into an empty answer, never raised into the
ingestion path.
"""
from __future__ import annotations
import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from .models import FlowRecord
from .normalize import try_normalize

log = logging.getLogger(__name__)

_FAILED = object()


class _JsonApi:
    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 5.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with self._get_session().get(url, params=params, timeout=self._timeout) as resp:
                resp.raise_for_status()
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            log.warning("GET %s failed: %s", url, exc)
            return _FAILED

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None


def _to_flows(payload: Any) -> List[FlowRecord]:
    if not isinstance(payload, list):
        return []
    flows: List[FlowRecord] = []
    for item in payload:
        f = try_normalize(item)
        if f is not None:
            flows.append(f)
    return flows


class HistoryClient(_JsonApi):
    """
    Historical flow search service. Used to seed the store and to find
    flows related to a given host.
    """

    async def recent(self, limit: int = 100) -> List[FlowRecord]:
        payload = await self._get_json("/flows", params={"limit": int(limit)})
        if payload is _FAILED:
            return []
        return _to_flows(payload)

    async def latest(self) -> Optional[FlowRecord]:
        payload = await self._get_json("/flows/latest")
        if payload is _FAILED or payload is None:
            return None
        return try_normalize(payload)

    async def search(self, **fields: Any) -> List[FlowRecord]:
        """
        Field equality search, e.g. search(src_ip="10.0.0.1").
        """
        params = {k: str(v) for k, v in fields.items() if v is not None}
        payload = await self._get_json("/flows/search", params=params)
        if payload is _FAILED:
            return []
        return _to_flows(payload)

    async def related(self, flow: FlowRecord) -> List[FlowRecord]:
        """
        Flows sharing this flow's source or destination host.

        Both searches run concurrently. Results are merged with the first
        occurrence of each timestamp kept, the flow itself left out, and
        sorted newest first.
        """
        by_src, by_dst = await asyncio.gather(
            self.search(src_ip=flow.src_ip),
            self.search(dst_ip=flow.dst_ip),
        )

        seen = set()
        merged: List[FlowRecord] = []
        for f in by_src + by_dst:
            if f.timestamp in seen:
                continue
            seen.add(f.timestamp)
            merged.append(f)

        related = [f for f in merged if f.timestamp != flow.timestamp]
        related.sort(key=lambda f: f.timestamp, reverse=True)
        return related


@dataclass(frozen=True)
class GeoLocation:
    ip: str
    latitude: Optional[float]
    longitude: Optional[float]
    city: Optional[str] = None
    org: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        # 0.0 is treated as missing, the service uses it for unknown
        return bool(self.latitude) and bool(self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "city": self.city,
            "org": self.org,
        }


def is_private_ip(ip: str) -> bool:
    """
    True for addresses with no public geography. Unparseable input counts
    as private so it is never sent to the lookup service.
    """
    if not ip:
        return True
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return True
    return (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_multicast
        or addr.is_reserved
        or addr.is_unspecified
    )


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class GeoIpClient(_JsonApi):
    """
    GeoIP lookups with an in-process cache.

    Only successful answers are cached, a failed lookup is retried the
    next time the address shows up.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 5.0,
    ):
        super().__init__(base_url, session=session, timeout=timeout)
        self._cache: Dict[str, GeoLocation] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def lookup(self, ip: str) -> Optional[GeoLocation]:
        if is_private_ip(ip):
            return None
        if ip in self._cache:
            return self._cache[ip]

        payload = await self._get_json(f"/geoip/{ip}")
        if not isinstance(payload, dict):
            return None

        loc = GeoLocation(
            ip=str(payload.get("ip") or ip),
            latitude=_to_float(payload.get("latitude")),
            longitude=_to_float(payload.get("longitude")),
            city=payload.get("city"),
            org=payload.get("org"),
        )
        self._cache[ip] = loc
        return loc

    async def locate(self, flow: FlowRecord) -> List[GeoLocation]:
        """
        Resolve both public endpoints of a flow, keeping only answers
        that carry coordinates.
        """
        ips = [ip for ip in dict.fromkeys((flow.src_ip, flow.dst_ip)) if not is_private_ip(ip)]
        results = await asyncio.gather(*(self.lookup(ip) for ip in ips))
        return [r for r in results if r is not None and r.has_coordinates]
